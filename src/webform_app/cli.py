"""Command line access to locally stored records."""
import logging

import click

from shared.enums import OutcomeStatus
from .app import WebformApp
from .config_manager import ConfigManager
from .errors import StorageUnavailable
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option('--db-path', envvar='WEBFORM_DB_PATH', help='Record store database file')
@click.option('--enketo-id', envvar='WEBFORM_ENKETO_ID', required=True, help='Survey identity')
@click.option('--log-level', default=None, help='Logging level (default from LOG_LEVEL)')
@click.pass_context
def cli(ctx, db_path, enketo_id, log_level):
    """Manage offline webform records."""
    setup_logging(log_level)
    overrides = {'enketo_id': enketo_id}
    if db_path:
        overrides['db_path'] = db_path
    config = ConfigManager(**overrides)
    ctx.obj = WebformApp(config=config).startup()
    ctx.call_on_close(ctx.obj.shutdown)


@cli.command('list')
@click.option('--drafts-only', is_flag=True, help='Hide records queued for upload')
@click.pass_obj
def list_command(app, drafts_only):
    """List stored records of the survey."""
    try:
        records = app.store.get_records(include_queued=not drafts_only)
    except StorageUnavailable as e:
        raise click.ClickException(str(e))

    if not records:
        click.echo('No records stored.')
        return
    for record in records:
        status = getattr(record.status, 'value', record.status)
        line = f"{record.instance_id}  {status:<18}  {record.name}"
        if record.retry_count:
            line += f"  (retries: {record.retry_count})"
        click.echo(line)
    logger.debug(f"Listed {len(records)} record(s)")


@cli.command('export')
@click.option('--export-dir', type=click.Path(file_okay=False), help='Directory for the zip archive')
@click.pass_obj
def export_command(app, export_dir):
    """Export all records of the survey to a zip archive."""
    outcome = app.coordinator.export_records(export_dir)
    if not outcome.ok:
        raise click.ClickException(outcome.message)
    click.echo(outcome.message)


@cli.command('upload')
@click.option('--retry-failed', is_flag=True, help='Also retry records that permanently failed')
@click.pass_context
def upload_command(ctx, retry_failed):
    """Upload all queued records now."""
    app = ctx.obj
    if retry_failed:
        recovered = app.store.recover_failed()
        click.echo(f"Re-queued {recovered} failed record(s)")

    # Results are reported through the console GUI
    outcome = app.handler.on_upload()
    report = outcome.data.get('report')
    if report is not None and report.skipped:
        click.echo('An upload is already in progress.')
    elif outcome.status == OutcomeStatus.FAILED:
        ctx.exit(1)
    elif report is None or not report.succeeded:
        click.echo('No records waiting for upload.')


def main():
    cli()


if __name__ == '__main__':
    main()
