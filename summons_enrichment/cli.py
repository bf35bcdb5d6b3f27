"""summons-enrich CLI: manage the local record store and run the worker.

Usage:
    summons-enrich init-db                          # Create the SQLite store
    summons-enrich put record.json                  # Insert or replace a record
    summons-enrich list                             # List record ids
    summons-enrich show abc                         # Print one record
    summons-enrich run --payload event.json
    summons-enrich run --summons-id abc --summons-number 000954041L \\
        --pdf-link https://... --video-link https://... --heal

Settings come from the environment (see ``WorkerConfig.from_env``);
``--db`` and ``--table`` override them.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import IO, Any

import click

from summons_enrichment.config import WorkerConfig
from summons_enrichment.store import SQLRecordStore
from summons_enrichment.worker import EnrichmentWorker


def _load_config(db_path: str | None, table: str | None) -> WorkerConfig:
    try:
        config = WorkerConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    overrides: dict[str, Any] = {}
    if db_path:
        overrides["database_path"] = Path(db_path)
    if table:
        overrides["summons_table"] = table
    return dataclasses.replace(config, **overrides)


def _read_json_object(stream: IO[str], option_name: str) -> dict[str, Any]:
    try:
        value = json.load(stream)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON for {option_name}: {e}") from e
    if not isinstance(value, dict):
        raise click.BadParameter(f"{option_name} must be a JSON object")
    return value


db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(),
    default=None,
    help="SQLite database path (default: $SUMMONS_DB_PATH or summons.db).",
)
table_option = click.option(
    "--table",
    default=None,
    help="Summons table name (default: $SUMMONS_TABLE or Summons-dev).",
)


@click.group()
@click.version_option(package_name="summons-enrichment")
def cli() -> None:
    """Summons enrichment worker CLI."""


@cli.command("init-db")
@db_option
def init_db(db_path: str | None) -> None:
    """Create the record store schema."""
    config = _load_config(db_path, None)

    async def _go() -> None:
        async with SQLRecordStore.open(config.database_path):
            pass

    asyncio.run(_go())
    click.echo(f"Database: {config.database_path}")


@cli.command()
@click.argument("item_file", type=click.File("r"))
@db_option
@table_option
def put(item_file: IO[str], db_path: str | None, table: str | None) -> None:
    """Insert or replace a record.

    ITEM_FILE holds a JSON object with at least an "id" key; use - for
    stdin.
    """
    config = _load_config(db_path, table)
    record = _read_json_object(item_file, "ITEM_FILE")
    if not record.get("id"):
        raise click.BadParameter("ITEM_FILE must have a non-empty 'id'")

    async def _go() -> None:
        async with SQLRecordStore.open(config.database_path) as store:
            await store.put_record(config.summons_table, record)

    asyncio.run(_go())
    click.echo(f"Stored {config.summons_table}/{record['id']}")


@cli.command("list")
@db_option
@table_option
def list_records(db_path: str | None, table: str | None) -> None:
    """List record ids in the summons table."""
    config = _load_config(db_path, table)

    async def _go() -> list[str]:
        async with SQLRecordStore.open(config.database_path) as store:
            return await store.list_record_ids(config.summons_table)

    record_ids = asyncio.run(_go())
    if not record_ids:
        click.echo("No records found.")
        return
    for record_id in record_ids:
        click.echo(record_id)


@cli.command()
@click.argument("record_id")
@db_option
@table_option
def show(record_id: str, db_path: str | None, table: str | None) -> None:
    """Print a record as JSON."""
    config = _load_config(db_path, table)

    async def _go() -> dict[str, Any] | None:
        async with SQLRecordStore.open(config.database_path) as store:
            return await store.get_record(config.summons_table, record_id)

    item = asyncio.run(_go())
    if item is None:
        raise click.ClickException(
            f"No record {record_id!r} in {config.summons_table}"
        )
    click.echo(json.dumps(item, indent=2, sort_keys=True))


@cli.command()
@click.option(
    "--payload",
    "payload_file",
    type=click.File("r"),
    default=None,
    help="JSON file with the trigger payload (direct or change-stream).",
)
@click.option("--summons-id", default=None, help="Record id.")
@click.option("--summons-number", default=None, help="Summons number.")
@click.option("--pdf-link", default=None, help="Summons PDF URL.")
@click.option("--video-link", default=None, help="Video evidence page URL.")
@click.option("--violation-date", default=None, help="Violation date.")
@click.option(
    "--heal",
    is_flag=True,
    help="Allow healing a record missing critical fields (direct payloads).",
)
@db_option
@table_option
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def run(
    payload_file: IO[str] | None,
    summons_id: str | None,
    summons_number: str | None,
    pdf_link: str | None,
    video_link: str | None,
    violation_date: str | None,
    heal: bool,
    db_path: str | None,
    table: str | None,
    verbose: bool,
) -> None:
    """Enrich one summons record and print the outcome.

    Exits with status 1 if the invocation failed.

    \b
    Examples:
        summons-enrich run --summons-id abc --summons-number 000954041L \\
            --video-link https://example.com/video/1
        summons-enrich run --payload stream_event.json
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = _load_config(db_path, table)

    if payload_file is not None:
        event = _read_json_object(payload_file, "--payload")
    else:
        event = {
            "summons_id": summons_id,
            "summons_number": summons_number,
            "pdf_link": pdf_link,
            "video_link": video_link,
            "violation_date": violation_date,
        }
    if heal:
        event["is_self_healing"] = True

    async def _go() -> dict[str, Any]:
        async with EnrichmentWorker.open(config) as worker:
            return await worker.handle(event)

    response = asyncio.run(_go())
    click.echo(json.dumps(response, indent=2))
    if response["statusCode"] != 200:
        sys.exit(1)


def main() -> None:
    """Entry point for the ``summons-enrich`` console script."""
    cli()
