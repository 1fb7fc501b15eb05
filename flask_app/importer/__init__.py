"""
Importer feature package.

Provides conditional blueprint and CLI registration for the Stripe payment
importer and donor maintenance commands.
"""

from __future__ import annotations

from flask import Flask

from flask_app.utils.importer import is_importer_enabled

from .cli import get_disabled_importer_group, importer_cli
from .pipeline import DonorMergeService, ImportResult, StripeCSVImporter
from .views import importer_blueprint

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "DonorMergeService",
    "ImportResult",
    "StripeCSVImporter",
]


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(IMPORTER_EXTENSION_KEY, {"enabled": False})


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount importer blueprint and CLI based on configuration.

    Records importer state inside ``app.extensions['importer']``.
    """
    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state["enabled"] = enabled

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    if importer_blueprint.name not in app.blueprints:
        app.register_blueprint(importer_blueprint)
    _set_cli(app, enabled=True)
    app.logger.info("Importer enabled.")
