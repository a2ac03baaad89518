"""storebench CLI."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from storebench import __version__
from storebench.config import (
    ConfigError,
    StorebenchConfig,
    generate_example_config_yaml,
    load_config,
)
from storebench.instrument.metrics import format_bytes
from storebench.results import (
    NUMERIC_FIELDS,
    RECORD_FIELDS,
    Comparison,
    ResultFilter,
    ResultReader,
    compare_to_baseline,
    get_file_size,
    rotate_if_needed,
)

# Default config file name for auto-discovery
DEFAULT_CONFIG = "storebench.yaml"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="storebench",
    help="Inspect, summarize and compare storage benchmark result logs",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog="[dim]Workflow: run benchmarks -> show -> summary -> compare[/dim]",
)

console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]OK[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]ERROR[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]WARN[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]INFO[/blue] {message}")


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def resolve_config(config_file: Path | None) -> StorebenchConfig:
    """Load --config, ./storebench.yaml when present, or the defaults."""
    path = config_file
    if path is None and Path(DEFAULT_CONFIG).exists():
        path = Path(DEFAULT_CONFIG)
    if path is None:
        return StorebenchConfig()

    try:
        return load_config(path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)  # noqa: B904


def resolve_log_path(log_file: Path | None, cfg: StorebenchConfig) -> Path:
    return log_file or Path(cfg.output.path)


def build_filter(
    benchmark: str | None = None,
    match: str | None = None,
    database: list[str] | None = None,
    dataset: list[str] | None = None,
    environment: list[str] | None = None,
    run_id: str | None = None,
    git_sha: str | None = None,
    since: str | None = None,
    until: str | None = None,
    tags: list[str] | None = None,
) -> ResultFilter:
    """Translate CLI options into a ResultFilter."""
    if benchmark and match:
        print_error("--benchmark and --match are mutually exclusive")
        raise typer.Exit(1)

    pattern: str | re.Pattern[str] | None = benchmark
    if match:
        try:
            pattern = re.compile(match)
        except re.error as e:
            print_error(f"Invalid --match pattern: {e}")
            raise typer.Exit(1)  # noqa: B904

    tag_map: dict[str, str] | None = None
    if tags:
        tag_map = {}
        for tag in tags:
            key, sep, value = tag.partition("=")
            if not sep:
                print_error(f"Invalid --tag '{tag}', expected KEY=VALUE")
                raise typer.Exit(1)
            tag_map[key] = value

    return ResultFilter(
        benchmark=pattern,
        database=database or None,
        dataset=dataset or None,
        environment=environment or None,
        run_id=run_id,
        git_sha=git_sha,
        timestamp_after=since,
        timestamp_before=until,
        tags=tag_map,
    )


OUTPUT_FORMATS = ("table", "json")


def check_output_format(output_format: str) -> None:
    """Exit with an error for an unsupported --format value."""
    if output_format not in OUTPUT_FORMATS:
        print_error(f"Unknown output format: {output_format}")
        print_info(f"Choose from: {', '.join(OUTPUT_FORMATS)}")
        raise typer.Exit(1)


def _echo_json(data: Any) -> None:
    # Plain stdout so the output stays parseable (no rich wrapping)
    typer.echo(json.dumps(data, indent=2))


def _pct(value: float) -> str:
    color = "red" if value > 0 else "green" if value < 0 else "dim"
    return f"[{color}]{value:+.1f}%[/{color}]"


def _ops_pct(value: float) -> str:
    color = "green" if value > 0 else "red" if value < 0 else "dim"
    return f"[{color}]{value:+.1f}%[/{color}]"


def _comparison_status(c: Comparison) -> str:
    if c.regression:
        return "[red]REGRESSION[/red]"
    if c.improved:
        return "[green]IMPROVED[/green]"
    return "[dim]OK[/dim]"


def _comparison_table(comparisons: list[Comparison]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Benchmark", style="cyan")
    table.add_column("Database")
    table.add_column("p50 (ms)", justify="right")
    table.add_column("p99 (ms)", justify="right")
    table.add_column("ops/s", justify="right")
    table.add_column("Status")

    for c in comparisons:
        table.add_row(
            c.benchmark,
            c.database,
            f"{c.baseline.p50_ms:.2f} -> {c.current.p50_ms:.2f} {_pct(c.p50_change_pct)}",
            f"{c.baseline.p99_ms:.2f} -> {c.current.p99_ms:.2f} {_pct(c.p99_change_pct)}",
            f"{c.baseline.ops_per_sec:.0f} -> {c.current.ops_per_sec:.0f} "
            f"{_ops_pct(c.ops_per_sec_change_pct)}",
            _comparison_status(c),
        )
    return table


# Shared option types
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Config file (default: ./storebench.yaml if present)"),
]
FileOption = Annotated[
    Path | None,
    typer.Option("--file", "-f", help="Result log (default: output.path from config)"),
]
BenchmarkOption = Annotated[
    str | None, typer.Option("--benchmark", "-b", help="Exact benchmark name")
]
MatchOption = Annotated[
    str | None, typer.Option("--match", "-m", help="Regex matched against benchmark names")
]
DatabaseOption = Annotated[
    list[str] | None, typer.Option("--database", "-d", help="Database (repeatable)")
]
DatasetOption = Annotated[list[str] | None, typer.Option("--dataset", help="Dataset (repeatable)")]
EnvironmentOption = Annotated[
    list[str] | None,
    typer.Option("--environment", "-e", help="worker | do | container | local (repeatable)"),
]
RunOption = Annotated[str | None, typer.Option("--run", "-r", help="Run ID")]


# =============================================================================
# CLI Commands
# =============================================================================


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Storage benchmark result log tooling."""
    configure_logging(verbose)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"storebench version {__version__}")


@app.command()
def init(
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path for configuration",
        ),
    ] = Path(DEFAULT_CONFIG),
    name: Annotated[
        str,
        typer.Option(
            "--name",
            "-n",
            help="Name recorded in the config",
        ),
    ] = "storebench",
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Overwrite existing file",
        ),
    ] = False,
) -> None:
    """Generate a starter configuration file.

    Every option is written commented out with its default value.
    """
    if output.exists() and not force:
        print_error(f"File already exists: {output}")
        print_info("Use --force to overwrite")
        raise typer.Exit(1)

    content = generate_example_config_yaml().replace("name: storebench", f"name: {name}", 1)
    output.write_text(content)
    print_success(f"Created configuration file: {output}")


@app.command()
def show(
    log_file: FileOption = None,
    config_file: ConfigOption = None,
    benchmark: BenchmarkOption = None,
    match: MatchOption = None,
    database: DatabaseOption = None,
    dataset: DatasetOption = None,
    environment: EnvironmentOption = None,
    run_id: RunOption = None,
    git_sha: Annotated[str | None, typer.Option("--git-sha", help="Git commit")] = None,
    since: Annotated[
        str | None, typer.Option("--since", help="ISO timestamp lower bound (inclusive)")
    ] = None,
    until: Annotated[
        str | None, typer.Option("--until", help="ISO timestamp upper bound (inclusive)")
    ] = None,
    tag: Annotated[
        list[str] | None, typer.Option("--tag", "-t", help="KEY=VALUE tag (repeatable)")
    ] = None,
    sort_by: Annotated[str | None, typer.Option("--sort", help="Sort by record field")] = None,
    ascending: Annotated[bool, typer.Option("--asc", help="Sort ascending")] = False,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows (0 = all)")] = 50,
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: table, json"),
    ] = "table",
) -> None:
    """Show benchmark records from a result log.

    Examples:

        storebench show --database sqlite --environment do

        storebench show --match '^vfs-cost/' --sort p50_ms --asc --format json
    """
    check_output_format(output_format)
    cfg = resolve_config(config_file)
    path = resolve_log_path(log_file, cfg)
    flt = build_filter(
        benchmark, match, database, dataset, environment, run_id, git_sha, since, until, tag
    )

    if sort_by and sort_by not in RECORD_FIELDS:
        print_error(f"Unknown sort field: {sort_by}")
        raise typer.Exit(1)

    reader = ResultReader(
        path,
        limit=limit or None,
        sort_by=sort_by,
        sort_direction="asc" if ascending else "desc",
    )
    records = reader.read(flt)

    if output_format == "json":
        _echo_json([r.to_dict() for r in records])
        return

    if not records:
        print_warning(f"No matching records in {path}")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Benchmark", style="cyan")
    table.add_column("Database")
    table.add_column("Dataset")
    table.add_column("Env")
    table.add_column("Run", style="dim")
    table.add_column("p50 (ms)", justify="right")
    table.add_column("p99 (ms)", justify="right")
    table.add_column("ops/s", justify="right")
    table.add_column("VFS r/w", justify="right")

    for r in records:
        table.add_row(
            r.benchmark,
            r.database,
            r.dataset,
            r.environment.value,
            r.run_id,
            f"{r.p50_ms:.2f}",
            f"{r.p99_ms:.2f}",
            f"{r.ops_per_sec:.0f}",
            f"{r.vfs_reads}/{r.vfs_writes}",
        )

    console.print(table)
    console.print(f"\n  {len(records)} record(s) from {path}")


@app.command()
def summary(
    log_file: FileOption = None,
    config_file: ConfigOption = None,
    group_by: Annotated[
        list[str] | None,
        typer.Option("--group-by", "-g", help="Group field (repeatable, default: database)"),
    ] = None,
    benchmark: BenchmarkOption = None,
    match: MatchOption = None,
    database: DatabaseOption = None,
    run_id: RunOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: table, json"),
    ] = "table",
) -> None:
    """Aggregate records into per-group latency, throughput and VFS totals."""
    check_output_format(output_format)
    cfg = resolve_config(config_file)
    path = resolve_log_path(log_file, cfg)
    fields = group_by or ["database"]

    unknown = [f for f in fields if f not in RECORD_FIELDS]
    if unknown:
        print_error(f"Unknown group field(s): {', '.join(unknown)}")
        raise typer.Exit(1)

    flt = build_filter(benchmark, match, database, run_id=run_id)
    summaries = ResultReader(path).aggregate(fields, flt)

    if output_format == "json":
        _echo_json([s.to_dict() for s in summaries])
        return

    if not summaries:
        print_warning(f"No matching records in {path}")
        return

    table = Table(show_header=True, header_style="bold")
    for f in fields:
        table.add_column(f, style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("p50 mean (ms)", justify="right")
    table.add_column("p50 median (ms)", justify="right")
    table.add_column("p99 mean (ms)", justify="right")
    table.add_column("ops/s mean", justify="right")
    table.add_column("VFS reads", justify="right")
    table.add_column("VFS writes", justify="right")
    table.add_column("Bytes written", justify="right")

    for s in summaries:
        table.add_row(
            *(str(s.group[f]) for f in fields),
            str(s.count),
            f"{s.timing['p50_ms'].mean:.2f}",
            f"{s.timing['p50_ms'].median:.2f}",
            f"{s.timing['p99_ms'].mean:.2f}",
            f"{s.throughput['ops_per_sec'].mean:.0f}",
            f"{s.vfs['reads'].total:,.0f}",
            f"{s.vfs['writes'].total:,.0f}",
            format_bytes(s.vfs["bytes_written"].total),
        )

    console.print(table)


@app.command()
def stats(
    field: Annotated[str, typer.Argument(help="Numeric record field, e.g. p50_ms")],
    log_file: FileOption = None,
    config_file: ConfigOption = None,
    benchmark: BenchmarkOption = None,
    match: MatchOption = None,
    database: DatabaseOption = None,
    run_id: RunOption = None,
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: table, json"),
    ] = "table",
) -> None:
    """Statistics (min/max/mean/median/stddev) over one numeric field."""
    if field not in NUMERIC_FIELDS:
        print_error(f"Not a numeric record field: {field}")
        print_info(f"Choose from: {', '.join(NUMERIC_FIELDS)}")
        raise typer.Exit(1)

    check_output_format(output_format)
    cfg = resolve_config(config_file)
    path = resolve_log_path(log_file, cfg)
    flt = build_filter(benchmark, match, database, run_id=run_id)
    result = ResultReader(path).stats(field, flt)

    if output_format == "json":
        _echo_json({"field": field, **asdict(result)})
        return

    table = Table(title=field, show_header=True, header_style="bold")
    for col in ("Count", "Min", "Max", "Mean", "Median", "Stddev"):
        table.add_column(col, justify="right")
    table.add_row(
        str(result.count),
        f"{result.min:.4g}",
        f"{result.max:.4g}",
        f"{result.mean:.4g}",
        f"{result.median:.4g}",
        f"{result.stddev:.4g}",
    )
    console.print(table)


@app.command()
def compare(
    baseline: Annotated[str, typer.Argument(help="Baseline run ID")],
    current: Annotated[
        str | None,
        typer.Argument(help="Current run ID (default: most recent other run)"),
    ] = None,
    log_file: FileOption = None,
    config_file: ConfigOption = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Significance threshold in percent"),
    ] = None,
    fail_on_regression: Annotated[
        bool,
        typer.Option("--fail-on-regression", help="Exit 1 when any benchmark regressed"),
    ] = False,
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: table, json"),
    ] = "table",
) -> None:
    """Compare two runs joined on (benchmark, database).

    Examples:

        storebench compare 20260101-120000-a1b2c3 20260102-120000-d4e5f6

        storebench compare 20260101-120000-a1b2c3 --fail-on-regression
    """
    check_output_format(output_format)
    cfg = resolve_config(config_file)
    path = resolve_log_path(log_file, cfg)
    threshold_pct = threshold if threshold is not None else cfg.compare.threshold_pct

    if current is None:
        report = compare_to_baseline(path, baseline, threshold_pct)
        if report.current_run_id is None:
            print_warning(f"No run other than {baseline} found in {path}")
            return
        current = report.current_run_id

    comparisons = ResultReader(path).compare(baseline, current, threshold_pct)
    regressions = [c for c in comparisons if c.regression]

    if output_format == "json":
        _echo_json(
            {
                "baseline_run_id": baseline,
                "current_run_id": current,
                "threshold_pct": threshold_pct,
                "comparisons": [c.to_dict() for c in comparisons],
            }
        )
    elif not comparisons:
        print_warning(f"No benchmarks in common between {baseline} and {current}")
    else:
        console.print(
            Panel(
                f"[bold]Baseline:[/bold] {baseline}\n"
                f"[bold]Current:[/bold]  {current}\n"
                f"Threshold: {threshold_pct:.1f}%",
                expand=False,
            )
        )
        console.print(_comparison_table(comparisons))
        improved = sum(1 for c in comparisons if c.improved)
        console.print(
            f"\n  {len(comparisons)} compared | "
            f"[red]{len(regressions)} regressed[/red] | "
            f"[green]{improved} improved[/green]"
        )

    if regressions and fail_on_regression:
        if output_format != "json":
            print_error(f"{len(regressions)} regression(s) above {threshold_pct:.1f}%")
        raise typer.Exit(1)


@app.command()
def rotate(
    log_file: FileOption = None,
    config_file: ConfigOption = None,
    max_bytes: Annotated[
        int | None,
        typer.Option("--max-bytes", help="Rotate above this size (default: from config)"),
    ] = None,
) -> None:
    """Archive the result log once it exceeds the size threshold."""
    cfg = resolve_config(config_file)
    path = resolve_log_path(log_file, cfg)
    threshold = max_bytes if max_bytes is not None else cfg.output.rotate_max_bytes

    size = get_file_size(path)
    try:
        rotated = rotate_if_needed(path, threshold)
    except OSError as e:
        print_error(f"Failed to rotate {path}: {e}")
        raise typer.Exit(1)  # noqa: B904

    if rotated:
        print_success(f"Rotated {path} ({format_bytes(size)})")
    else:
        print_info(f"{path} is {format_bytes(size)}, below {format_bytes(threshold)}; not rotated")


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
