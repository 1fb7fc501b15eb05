"""
CLI commands for the Stripe importer and donor maintenance.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click
from flask.cli import ScriptInfo

from flask_app.importer.errors import FatalIOError
from flask_app.importer.pipeline import DonorMergeService, MergeError, StripeCSVImporter, format_summary, policy_from_config
from flask_app.importer.utils import cleanup_upload, resolve_upload_directory
from flask_app.models.base import db
from flask_app.utils.importer import is_importer_enabled


def _load_enabled_app(ctx):
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException("Importer is disabled; enable it via IMPORTER_ENABLED before running.")
    return app


@click.group(name="importer", invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Stripe import and donor maintenance commands.

    Displays the active import settings when invoked without a subcommand.
    """
    app = _load_enabled_app(ctx)
    if ctx.invoked_subcommand is None:
        policy = policy_from_config(app.config)
        click.echo("Importer enabled.")
        click.echo(f"  upload_dir                    : {resolve_upload_directory(app)}")
        click.echo(f"  duplicate_window_days         : {policy.window_days}")
        click.echo(f"  duplicate_includes_canceled   : {policy.include_canceled}")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException(
            "Importer commands are unavailable because IMPORTER_ENABLED=false. "
            "Set IMPORTER_ENABLED=true to enable them."
        )

    return disabled_group


@importer_cli.command("stripe")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Path to a Stripe payments CSV export.",
)
@click.option(
    "--summary-json",
    is_flag=True,
    help="Emit a machine-readable summary payload after completion.",
)
@click.pass_context
def importer_stripe(ctx, file_path: Path, summary_json: bool):
    """Import a Stripe payments CSV export."""
    app = _load_enabled_app(ctx)
    csv_path = file_path.resolve()

    importer = StripeCSVImporter(db.session, policy=policy_from_config(app.config))
    try:
        result = importer.import_file(csv_path)
    except FatalIOError as exc:
        app.logger.error(
            "Stripe import aborted: %s",
            exc,
            extra={"importer_file": str(csv_path)},
        )
        raise click.ClickException(f"Import failed: {exc}") from exc

    click.echo(format_summary(result, source=csv_path))
    if summary_json:
        click.echo(json.dumps(result.as_summary_payload(), indent=2, sort_keys=True))


@importer_cli.command("merge-donors")
@click.option("--target", "target_id", required=True, type=int, help="ID of the donor that survives the merge.")
@click.argument("source_ids", nargs=-1, required=True, type=int)
@click.pass_context
def importer_merge_donors(ctx, target_id: int, source_ids: tuple[int, ...]):
    """Merge SOURCE_IDS into the --target donor."""
    _load_enabled_app(ctx)

    try:
        result = DonorMergeService(db.session).merge(target_id, source_ids)
    except MergeError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(
        f"Merged donor(s) {', '.join(str(donor_id) for donor_id in result.merged_ids)} into {result.target.id}; "
        f"{result.donations_reassigned} donation(s) reassigned."
    )
    if result.repointed_ids:
        click.echo(f"Re-pointed previously merged donor(s): {', '.join(str(donor_id) for donor_id in result.repointed_ids)}")


@importer_cli.command("cleanup-uploads")
@click.option(
    "--max-age-hours",
    default=24,
    show_default=True,
    type=int,
    help="Remove staged uploads older than the specified number of hours.",
)
@click.pass_context
def importer_cleanup_uploads(ctx, max_age_hours: int):
    """
    Delete staged upload files left behind by interrupted HTTP imports.
    """

    app = _load_enabled_app(ctx)

    uploads_dir = resolve_upload_directory(app)
    cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
    removed = 0
    for path in uploads_dir.iterdir():
        if not path.is_file():
            continue
        try:
            modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
        except FileNotFoundError:
            continue
        if modified < cutoff:
            cleanup_upload(path)
            removed += 1

    click.echo(f"Removed {removed} upload file(s) older than {max_age_hours} hours from {uploads_dir}.")
