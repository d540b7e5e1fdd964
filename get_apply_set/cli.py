"""
Get-apply-set demo.

Runs concurrent workers that each read a counter from the cache, advance it
and write it back, then compares the stored result with the value a lossless
run would produce.

Usage:
    get-apply-set --host localhost --port 11211 --iter 1000 --key ctr --method atomic
    get-apply-set --host localhost --port 11211 --iter 1000 --key ctr --method nonatomic
    get-apply-set --engine valkey --host localhost --port 6379 --iter 500 --key ctr --method atomic -v
"""

import logging
from typing import NoReturn, Optional

import click
import typer
from rich import box
from rich.console import Console
from rich.table import Table
from typer.core import TyperCommand

from .cache import CacheConfig, CacheError, ConfigurationError, SUPPORTED_ENGINES, cache_opener
from .codec import MalformedValue
from .config import DEFAULT_CONCURRENCY, RunConfig
from .driver import RunResult, run_workers
from .strategies import RetryLimitExceeded, Strategy
from .verifier import Verification, format_report, verify

logger = logging.getLogger(__name__)

# Exit statuses
EXIT_FAILURE = 1
EXIT_MALFORMED_VALUE = 2

app = typer.Typer(help="Concurrent get-apply-set on a shared cache counter", add_completion=False)
console = Console(stderr=True)


class RunCommand(TyperCommand):
    """Command whose option parsing errors exit with the failure status."""

    def parse_args(self, ctx: click.Context, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            usage_error(ctx, e.format_message())


def print_worker_table(result: RunResult, verification: Verification) -> None:
    """Print per-worker statistics using rich."""
    table = Table(title="Workers", box=box.ROUNDED)
    table.add_column("Worker", style="cyan bold", justify="right")
    table.add_column("Updates", justify="right")
    table.add_column("Conflicts", justify="right")
    table.add_column("Elapsed", justify="right", style="dim")

    for stats in result.workers:
        table.add_row(
            str(stats.worker),
            str(stats.iterations),
            str(stats.conflicts),
            f"{stats.elapsed:.3f}s",
        )

    console.print(table)
    status = "[green]no updates lost[/green]" if verification.consistent else (
        f"[red]{verification.lost_updates} short of expected[/red]"
    )
    console.print(f"Total conflicts: {result.total_conflicts}, {status}")


def usage_error(ctx: typer.Context, message: str) -> NoReturn:
    """Print usage and exit with the failure status."""
    console.print(ctx.get_usage(), markup=False, highlight=False)
    console.print(message, style="red", markup=False, highlight=False)
    raise typer.Exit(code=EXIT_FAILURE)


@app.command(cls=RunCommand)
def run(
    ctx: typer.Context,
    host: str = typer.Option(..., "--host", envvar="CACHE_HOST", help="cache host"),
    port: int = typer.Option(..., "--port", envvar="CACHE_PORT", help="cache port"),
    iterations: int = typer.Option(..., "--iter", help="iterations per worker"),
    key: str = typer.Option(..., "--key", help="cache key"),
    method: str = typer.Option(..., "--method", "--strategy", help=Strategy.names()),
    engine: str = typer.Option(
        "memcached",
        "--engine",
        envvar="CACHE_ENGINE",
        help="|".join(SUPPORTED_ENGINES),
    ),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="number of workers"),
    max_retries: Optional[int] = typer.Option(
        None,
        "--max-retries",
        help="give up a compare-and-swap update after this many conflicts",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="debug logging and worker table"),
):
    """Run the workers and print the expected and actual counters."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(threadName)s %(name)s %(levelname)s %(message)s",
    )

    try:
        strategy = Strategy(method)
    except ValueError:
        usage_error(ctx, f"Unknown method '{method}', expected one of {Strategy.names()}")

    try:
        config = RunConfig(
            key=key,
            iterations=iterations,
            strategy=strategy,
            cache=CacheConfig.from_env(engine=engine, host=host, port=port),
            concurrency=concurrency,
            max_retries=max_retries,
        )
    except ConfigurationError as e:
        usage_error(ctx, str(e))

    open_cache = cache_opener(config.cache)

    try:
        result = run_workers(config, open_cache)
        cache = open_cache()
        try:
            verification = verify(cache, config.key, config.total_updates)
        finally:
            cache.close()
    except MalformedValue as e:
        logger.error(f"Aborting: {e}")
        raise typer.Exit(code=EXIT_MALFORMED_VALUE)
    except (CacheError, RetryLimitExceeded) as e:
        logger.error(f"Aborting: {e}")
        raise typer.Exit(code=EXIT_FAILURE)

    if verbose:
        print_worker_table(result, verification)

    typer.echo(format_report(verification))


def main():
    app()


if __name__ == "__main__":
    main()
