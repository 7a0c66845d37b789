"""Progress reports application factory."""

from __future__ import annotations

from typing import Mapping, Optional

from flask import Flask

from .config import load_environment
from .logging import configure_logging
from .reports import build_default_reports
from .routes import reports
from .services.report import ReportDataController


def create_app(
    report_controllers: Optional[Mapping[str, ReportDataController]] = None,
) -> Flask:
    """Create the Flask application serving ``report_controllers``.

    The built-in reports are registered when no controllers are given.
    """
    load_environment()
    configure_logging()

    if report_controllers is None:
        report_controllers = build_default_reports()

    app = Flask(__name__)
    app.extensions[reports.EXTENSION_KEY] = dict(report_controllers)
    app.register_blueprint(reports.bp)

    return app
