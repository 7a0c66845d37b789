"""Blueprint exposing report controllers as a JSON API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from ..services.filters import FilterOption
from ..services.report import ReportDataController
from ..services.sorting import SortConfigurationError

bp = Blueprint("reports", __name__, url_prefix="/api/reports")
logger = logging.getLogger(__name__)

EXTENSION_KEY = "progress_reports"


def _reports() -> Mapping[str, ReportDataController]:
    return current_app.extensions.get(EXTENSION_KEY, {})


def _lookup(
    name: str,
) -> Tuple[Optional[ReportDataController], Optional[ResponseReturnValue]]:
    controller = _reports().get(name)
    if controller is None:
        logger.warning("Unknown report %r requested", name)
        return None, (jsonify({"error": f"Unknown report: {name}"}), 404)
    return controller, None


def _sanitize_page(value: Any) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed < 1:
        return None
    return parsed


def _view_payload(name: str, controller: ReportDataController) -> Dict[str, Any]:
    state = controller.state
    payload: Dict[str, Any] = {
        "name": name,
        "status": state.status,
        "loading": state.loading,
        "lastError": state.last_error,
        "activeFilters": state.active_filters,
    }
    payload.update(controller.render())
    return payload


@bp.route("", methods=["GET"])
def api_reports():
    names = sorted(_reports())
    logger.info("GET /api/reports - %d reports registered", len(names))
    return jsonify({"reports": names})


@bp.route("/<name>", methods=["GET"])
def api_report_view(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    return jsonify(_view_payload(name, controller))


@bp.route("/<name>/mount", methods=["POST"])
def api_report_mount(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    logger.info("POST /api/reports/%s/mount", name)
    controller.mount()
    return jsonify(_view_payload(name, controller))


@bp.route("/<name>/filters", methods=["POST"])
def api_report_filter(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    data = request.get_json(force=True) or {}
    field = str(data.get("field") or "").strip()
    value = data.get("value", "")
    if value is None:
        value = ""
    logger.info("POST /api/reports/%s/filters field=%s value=%r", name, field, value)
    if not field:
        return jsonify({"error": "field is required"}), 400
    selection: Any = value
    if data.get("name") is not None:
        selection = FilterOption(str(data["name"]), value)
    try:
        controller.select_filter(field, selection)
    except KeyError:
        logger.warning("POST /api/reports/%s/filters unknown field %s", name, field)
        return jsonify({"error": f"Unknown filter field: {field}"}), 400
    return jsonify(_view_payload(name, controller))


@bp.route("/<name>/sort", methods=["POST"])
def api_report_sort(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    data = request.get_json(force=True) or {}
    key = str(data.get("key") or "").strip()
    logger.info("POST /api/reports/%s/sort key=%s", name, key)
    if not key:
        return jsonify({"error": "key is required"}), 400
    try:
        controller.sort_by(key)
    except SortConfigurationError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(_view_payload(name, controller))


@bp.route("/<name>/page", methods=["POST"])
def api_report_page(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    data = request.get_json(force=True) or {}
    page = _sanitize_page(data.get("page"))
    logger.info("POST /api/reports/%s/page page=%r", name, data.get("page"))
    if page is None:
        return jsonify({"error": "page must be a positive integer"}), 400
    controller.go_to_page(page)
    return jsonify(_view_payload(name, controller))


@bp.route("/<name>/export", methods=["POST"])
def api_report_export(name: str):
    controller, error = _lookup(name)
    if error is not None:
        return error
    if not controller.config.export_csv:
        return jsonify({"error": f"Report {name} does not support CSV export"}), 400
    logger.info("POST /api/reports/%s/export", name)
    controller.export_csv()
    state = controller.state
    return (
        jsonify({"exportStatus": state.export_status, "email": state.teacher.get("email")}),
        202,
    )
