import asyncio

import click

from pyfilehub.config.settings import get_config_manager
from pyfilehub.core.service import ReconcileReport, StorageService
from pyfilehub.core.storage.artifacts import LocalArtifactBackend
from pyfilehub.core.storage.catalog import FileCatalog
from pyfilehub.core.storage.database import Database
from pyfilehub.logging.setup import get_logger, setup_logging

logger = get_logger(__name__)
logger.debug("Loaded admin_cli.py")


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Path to config.yaml")
@click.pass_context
def admin_cli(ctx, config_path):
    """Admin CLI for maintaining file storage."""
    ctx.ensure_object(dict)
    config_manager = get_config_manager()
    config_manager.load(config_path)
    setup_logging(config_manager.logging_config)
    ctx.obj["CONFIG_MANAGER"] = config_manager


async def _run_reconcile(config_manager, repair: bool) -> ReconcileReport:
    database = Database(config_manager.database_url)
    try:
        await database.create_all()
        service = StorageService(
            FileCatalog(database),
            LocalArtifactBackend(config_manager.artifacts_base_dir),
            max_file_size_bytes=config_manager.max_file_size_bytes,
        )
        return await service.reconcile(repair=repair)
    finally:
        await database.dispose()


def _print_report(report: ReconcileReport) -> None:
    for user_id, name in report.orphans:
        click.echo(f"orphan artifact: user {user_id}: {name}")
    for record in report.dangling:
        click.echo(f"dangling record: file {record.id} (user {record.user_id}): "
                   f"{record.stored_name}")
    for record, actual in report.size_mismatches:
        click.echo(f"size mismatch: file {record.id} (user {record.user_id}): "
                   f"recorded {record.size}, actual {actual}")
    for user_id, marker in report.partials:
        click.echo(f"partial write: user {user_id}: {marker}")


@admin_cli.command()
@click.option("--repair", is_flag=True, default=False,
              help="Delete orphans and partial writes, drop dangling records")
@click.pass_context
def reconcile(ctx, repair):
    """Compare catalog records with stored artifacts."""
    config_manager = ctx.obj["CONFIG_MANAGER"]
    report = asyncio.run(_run_reconcile(config_manager, repair))

    if report.clean:
        click.echo("Storage is consistent.")
        return

    _print_report(report)
    if report.repaired:
        click.echo("Repairs applied.")

    if report.unresolved:
        click.echo(f"{report.unresolved} problem(s) remain.")
        ctx.exit(1)
