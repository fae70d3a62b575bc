"""
Command line interface for migrating hvp activities to h5pactivity.

Without ``--execute`` the tool only lists what it would migrate. With
``--csvfile`` it writes the link report of already migrated activities and
migrates nothing.

Examples:
    hvp2h5p --limit=10
    hvp2h5p --execute --keeporiginal=2 --copy2cb=0 --contenttypes=12,34
    hvp2h5p --csvfile=migrated.csv
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from email.utils import formatdate
from pathlib import Path

import click
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hvp2h5p import __version__
from hvp2h5p.audit import AuditReporter
from hvp2h5p.batch import BatchDriver
from hvp2h5p.config import LOG_LEVELS, MigratorSettings, get_settings
from hvp2h5p.engine import MigrationEngine
from hvp2h5p.exceptions import ConfigurationError, Hvp2H5PError
from hvp2h5p.logging import setup_logging
from hvp2h5p.models import BatchEntry, CopyPolicy, MigrationOutcome, RetentionPolicy
from hvp2h5p.selector import Selector
from hvp2h5p.stores import SQLAssetStore, SQLRecordStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


@dataclass(frozen=True)
class RunOptions:
    """Validated command line options."""

    execute: bool
    limit: int
    retention: RetentionPolicy
    copy: CopyPolicy
    content_types: list[int]
    csvfile: Path | None


def parse_options(
    settings: MigratorSettings,
    execute: bool,
    limit: str | None,
    keeporiginal: str | None,
    copy2cb: str | None,
    contenttypes: str | None,
    csvfile: Path | None,
) -> RunOptions:
    """
    Translate raw option values into policies and numbers.

    Raises:
        ConfigurationError: With the message shown to the operator
    """
    if limit is None:
        limit_value = settings.default_limit
    else:
        try:
            limit_value = int(limit.strip())
        except ValueError:
            raise ConfigurationError("Limit must be an integer.") from None
        if limit_value <= 0:
            raise ConfigurationError("Limit must be a positive integer.")

    retention = RetentionPolicy.from_code(
        settings.default_keeporiginal if keeporiginal is None else keeporiginal
    )
    copy = CopyPolicy.from_code(settings.default_copy2cb if copy2cb is None else copy2cb)

    content_types: list[int] = []
    if contenttypes:
        for part in contenttypes.split(","):
            try:
                content_types.append(int(part.strip()))
            except ValueError:
                raise ConfigurationError(
                    "contenttypes must be a list of library ids separated by commas."
                ) from None

    return RunOptions(
        execute=execute,
        limit=limit_value,
        retention=retention,
        copy=copy,
        content_types=content_types,
        csvfile=csvfile,
    )


def format_entry(entry: BatchEntry) -> list[str]:
    """Return the output lines of one processed record."""
    legacy = entry.legacy
    shortname = entry.course.shortname if entry.course else ""
    lines = [f"Migrating ID:{legacy.id}\t{legacy.name}\t course:{legacy.course}\t{shortname}"]
    result = entry.result
    if not isinstance(result, MigrationOutcome):
        lines.append("\t ...Skipping\n")
    elif not result.success:
        lines.append(f"\tException: {result.error}\n")
        lines.append("\t ...Failed!\n")
    elif not result.warnings:
        lines.append("\t ...Successful\n")
    else:
        lines.extend(f"\t ...{warning}\n" for warning in result.warnings)
    return lines


async def write_report(
    settings: MigratorSettings,
    engine: AsyncEngine,
    destination: Path,
) -> int:
    records = SQLRecordStore(engine, enable_tracing=settings.enable_tracing)
    assets = SQLAssetStore(engine, enable_tracing=settings.enable_tracing)
    reporter = AuditReporter(
        records, assets, settings.site_url, enable_tracing=settings.enable_tracing
    )
    rows = await reporter.reconcile()
    reporter.write_csv(rows, destination)
    click.echo("Done writing to CSV output file")
    return EXIT_OK


async def run_batch(
    settings: MigratorSettings,
    engine: AsyncEngine,
    options: RunOptions,
) -> int:
    records = SQLRecordStore(engine, enable_tracing=settings.enable_tracing)
    assets = SQLAssetStore(engine, enable_tracing=settings.enable_tracing)
    driver = BatchDriver(
        Selector(records, enable_tracing=settings.enable_tracing),
        MigrationEngine(records, assets, enable_tracing=settings.enable_tracing),
        records,
        enable_tracing=settings.enable_tracing,
    )

    click.echo(f"Search for {options.limit} non migrated hvp activites\n")

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform or outside the main thread.
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(signum, driver.request_stop)
            installed.append(signum)

    processed = succeeded = failed = 0
    try:
        async for entry in driver.stream(
            options.content_types,
            options.limit,
            options.retention,
            options.copy,
            dry_run=not options.execute,
        ):
            processed += 1
            succeeded += entry.succeeded
            failed += entry.failed
            for line in format_entry(entry):
                click.echo(line)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)

    if processed == 0 and not driver.stop_requested:
        click.echo(" * No activites are found.\n")
        return EXIT_ERROR
    if driver.stop_requested:
        click.echo("Batch stopped before all activities were processed.")
    click.echo(f"Processed: {processed}, succeeded: {succeeded}, failed: {failed}")
    return EXIT_OK


async def run(settings: MigratorSettings, options: RunOptions) -> int:
    """Check preconditions, then write the report or run the batch."""
    engine = create_async_engine(settings.database_url)
    try:
        records = SQLRecordStore(engine, enable_tracing=settings.enable_tracing)
        if not await records.schema_ready():
            click.echo("Upgrade pending, migration suspended.")
            return EXIT_ERROR

        click.echo(f"Server Time: {formatdate(localtime=True)}\n")
        if options.csvfile is not None:
            return await write_report(settings, engine, options.csvfile)
        return await run_batch(settings, engine, options)
    finally:
        await engine.dispose()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-e", "--execute", is_flag=True, help="Run the migration tool (otherwise only list)")
@click.option("-l", "--limit", metavar="N", help="Migrate at most N activities (default 100)")
@click.option(
    "-k",
    "--keeporiginal",
    metavar="N",
    help="After migration 0 will remove the original activity, 1 will keep it and 2 will hide it",
)
@click.option(
    "-c",
    "--copy2cb",
    metavar="N",
    help=(
        "Whether H5P files should be added to the content bank with a link (1), "
        "as a copy (2) or not added (0)"
    ),
)
@click.option(
    "-t",
    "--contenttypes",
    metavar="IDS",
    help="Only migrate activities whose main library id is in this comma separated list",
)
@click.option(
    "-f",
    "--csvfile",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the link report of migrated activities to this file and exit",
)
@click.option("--database-url", help="SQLAlchemy async database URL")
@click.option("--site-url", help="Public base URL of the site")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log verbosity",
)
@click.version_option(__version__, prog_name="hvp2h5p")
def main(
    execute: bool,
    limit: str | None,
    keeporiginal: str | None,
    copy2cb: str | None,
    contenttypes: str | None,
    csvfile: Path | None,
    database_url: str | None,
    site_url: str | None,
    log_level: str | None,
) -> None:
    """Migrate mod_hvp activities to mod_h5pactivity."""
    try:
        settings = get_settings(
            database_url=database_url, site_url=site_url, log_level=log_level
        )
    except ValidationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        raise SystemExit(EXIT_ERROR) from e
    setup_logging(settings.log_level)

    if settings.maintenance_mode:
        click.echo("CLI maintenance mode active, migration suspended.")
        raise SystemExit(EXIT_ERROR)

    try:
        options = parse_options(
            settings, execute, limit, keeporiginal, copy2cb, contenttypes, csvfile
        )
    except ConfigurationError as e:
        click.echo(e.message)
        raise SystemExit(EXIT_ERROR) from e

    try:
        exit_code = asyncio.run(run(settings, options))
    except Hvp2H5PError as e:
        logger.error("Migration aborted: %s", e)
        click.echo(f"Error: {e.message}", err=True)
        exit_code = EXIT_ERROR
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
