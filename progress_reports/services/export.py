"""Asynchronous CSV export submission."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol

import requests  # type: ignore[import-untyped]

from ..config import CSV_EXPORT_URL
from ..report_client import (
    RequestDescriptor,
    build_export_request,
    format_http_error,
    send_request,
)
from .source import resolve_report_url

logger = logging.getLogger(__name__)


class ConfirmationSurface(Protocol):
    def open(self, email: Optional[str]) -> Any: ...


class LogConfirmation:
    """Confirmation surface that records the queued export in the log."""

    def open(self, email: Optional[str]) -> None:
        logger.info("CSV export queued; results will be emailed to %s", email or "?")


@dataclass(frozen=True)
class ExportRequest:
    export_type: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    teacher: Mapping[str, Any] = field(default_factory=dict)


class ExportCoordinator:
    def __init__(
        self,
        executor: Executor,
        request_url: str = CSV_EXPORT_URL,
        send: Callable[[RequestDescriptor], Any] = send_request,
        confirmation: Optional[ConfirmationSurface] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.request_url = resolve_report_url(request_url, base_url)
        self._executor = executor
        self._send = send
        self._confirmation = confirmation or LogConfirmation()

    def create_export(
        self,
        export_type: str,
        current_filters: Mapping[str, Any],
        teacher: Optional[Mapping[str, Any]] = None,
    ) -> "Future[bool]":
        export = ExportRequest(
            export_type=export_type,
            filters=dict(current_filters),
            teacher=dict(teacher or {}),
        )
        descriptor = build_export_request(
            self.request_url, export.export_type, export.filters
        )
        logger.info(
            "Submitting CSV export type=%s filters=%s", export_type, export.filters
        )
        return self._executor.submit(self._submit, export, descriptor)

    def _submit(self, export: ExportRequest, descriptor: RequestDescriptor) -> bool:
        try:
            self._send(descriptor)
        except requests.HTTPError as exc:
            logger.warning(
                "CSV export %s was not queued: %s",
                export.export_type,
                format_http_error(exc),
            )
            return False
        except requests.RequestException as exc:
            logger.warning("CSV export %s was not queued: %s", export.export_type, exc)
            return False
        self._confirmation.open(export.teacher.get("email"))
        return True


__all__ = ["ConfirmationSurface", "ExportCoordinator", "ExportRequest", "LogConfirmation"]
