"""Report data controller: state, fetch lifecycle and derived view state."""

from __future__ import annotations

import copy
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import requests  # type: ignore[import-untyped]

from ..config import DEFAULT_MAX_PAGE_NUMBER, FETCH_WORKERS, REPORT_TIMEOUT
from ..report_client import (
    ReportRequestParams,
    RequestDescriptor,
    build_report_request,
    format_http_error,
    send_request,
)
from .export import ExportCoordinator
from .filters import (
    FilterDefinition,
    FilterOption,
    FilterStrategy,
    resolve_filter_definitions,
)
from .renderers import ReportRenderers
from .sorting import ActiveSort, SortDefinition, SortStrategy
from .source import resolve_report_url

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]

STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_ERROR = "error"

EXPORT_PENDING = "pending"
EXPORT_QUEUED = "queued"
EXPORT_FAILED = "failed"


def _noop() -> None:
    return None


@dataclass
class ReportConfig:
    """Static configuration of one report instance."""

    source_url: str
    results_key: str
    sort_definitions: Callable[[], SortDefinition]
    column_definitions: Callable[[], Sequence[Mapping[str, Any]]] = list
    filter_types: Sequence[str] = ()
    pagination: bool = False
    on_fetch_success: Optional[Callable[[Mapping[str, Any]], Any]] = None
    on_fetch_error: Optional[Callable[[Exception], Any]] = None
    export_csv: Optional[str] = None
    max_page_number: int = DEFAULT_MAX_PAGE_NUMBER
    filter_definitions: Mapping[str, FilterDefinition] = field(default_factory=dict)
    discard_stale_responses: bool = False
    timeout: int = REPORT_TIMEOUT


@dataclass
class ReportState:
    current_page: int = 1
    num_pages: int = 1
    loading: bool = False
    status: str = STATUS_IDLE
    results: List[Row] = field(default_factory=list)
    filter_option_sets: Dict[str, List[FilterOption]] = field(default_factory=dict)
    active_filters: Dict[str, Any] = field(default_factory=dict)
    selected_options: Dict[str, FilterOption] = field(default_factory=dict)
    active_sort: Optional[ActiveSort] = None
    teacher: Dict[str, Any] = field(default_factory=dict)
    last_error: Optional[str] = None
    export_status: Optional[str] = None


@dataclass(frozen=True)
class ReportView:
    state: ReportState
    visible_results: List[Row]
    columns: List[Mapping[str, Any]]
    pagination: bool
    max_page_number: int


class ReportDataController:
    """Owns the state of one report and coordinates its fetches.

    Every transition that needs data issues a fetch on ``executor`` and
    returns immediately. Overlapping fetches are not cancelled; unless
    ``discard_stale_responses`` is set, the last response processed wins.
    """

    def __init__(
        self,
        config: ReportConfig,
        executor: Optional[Executor] = None,
        send: Callable[[RequestDescriptor], Any] = send_request,
        renderers: Optional[ReportRenderers] = None,
        export_coordinator: Optional[ExportCoordinator] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.config = config
        self.source_url = resolve_report_url(config.source_url, base_url)
        self.renderers = renderers or ReportRenderers()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=FETCH_WORKERS, thread_name_prefix="report-fetch"
        )
        self._send = send
        self._lock = threading.RLock()
        self._state = ReportState()
        self._request_token = 0
        self._filters = FilterStrategy(
            resolve_filter_definitions(config.filter_types, config.filter_definitions),
            on_change=self._on_filter_change,
        )
        self._sorting = SortStrategy()
        if export_coordinator is None and config.export_csv:
            export_coordinator = ExportCoordinator(
                self._executor, send=send, base_url=base_url
            )
        self._export = export_coordinator

    # Lifecycle -----------------------------------------------------------

    def mount(self) -> "Future[Optional[Mapping[str, Any]]]":
        sort_definition = self.config.sort_definitions()
        with self._lock:
            self._sorting.define_sorting(sort_definition.config, sort_definition.default)
        return self.fetch_data()

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # Filters -------------------------------------------------------------

    def select_filter(self, field: str, selection: Union[FilterOption, Any]) -> None:
        with self._lock:
            if isinstance(selection, FilterOption):
                self._filters.select_option(field, selection)
            else:
                self._filters.select_field(field, selection)

    def select_classroom(self, classroom: FilterOption) -> None:
        self.select_filter("classroom_id", classroom)

    def select_student(self, student: FilterOption) -> None:
        self.select_filter("student_id", student)

    def select_unit(self, unit: FilterOption) -> None:
        self.select_filter("unit_id", unit)

    def _on_filter_change(self) -> None:
        self._refetch()

    def _refetch(self) -> None:
        # Server-side changes restart at page 1; the old page may not exist.
        if self.config.pagination:
            self._reset_pagination()
        self.fetch_data()

    def _reset_pagination(self) -> None:
        with self._lock:
            self._state.current_page = 1

    # Sorting -------------------------------------------------------------

    def handle_sort(self) -> Callable[[str], None]:
        """Return the sort handler given to the table renderer.

        Paginated reports are ordered by the server, so a sort change refetches.
        Unpaginated reports hold every row and re-sort locally.
        """
        after_sort = self._refetch if self.config.pagination else _noop

        def sort_handler(key: str) -> None:
            with self._lock:
                self._sorting.sort_results(after_sort, key)

        return sort_handler

    def sort_by(self, key: str) -> None:
        self.handle_sort()(key)

    # Pagination ----------------------------------------------------------

    def go_to_page(self, page: int) -> "Future[Optional[Mapping[str, Any]]]":
        if page < 1:
            raise ValueError(f"Page numbers start at 1 (got {page})")
        with self._lock:
            self._state.current_page = page
        return self.fetch_data()

    # Fetching ------------------------------------------------------------

    def request_params(self) -> ReportRequestParams:
        with self._lock:
            return ReportRequestParams(
                source_url=self.source_url,
                filters=self._filters.active_filters,
                page=self._state.current_page if self.config.pagination else None,
                sort=self._sorting.sort_params(),
                timeout=self.config.timeout,
            )

    def build_request(self) -> RequestDescriptor:
        return build_report_request(self.request_params())

    def fetch_data(self) -> "Future[Optional[Mapping[str, Any]]]":
        with self._lock:
            self._request_token += 1
            token = self._request_token
            descriptor = self.build_request()
            self._state.loading = True
            self._state.status = STATUS_LOADING
        logger.info("Fetching report %s params=%s", descriptor.url, dict(descriptor.params))
        return self._executor.submit(self._perform_fetch, descriptor, token)

    def _is_stale(self, token: int) -> bool:
        return self.config.discard_stale_responses and token != self._request_token

    def _perform_fetch(
        self, descriptor: RequestDescriptor, token: int
    ) -> Optional[Mapping[str, Any]]:
        try:
            payload = self._send(descriptor)
            if not isinstance(payload, Mapping):
                raise ValueError(
                    f"Unexpected report payload type {type(payload).__name__}"
                )
            results = payload.get(self.config.results_key)
            if results is None:
                results = []
            num_pages = max(1, int(payload.get("page_count") or 1))
            results = list(results)
            teacher = payload.get("teacher") or {}
            if not isinstance(teacher, Mapping):
                raise TypeError(
                    f"Unexpected teacher payload type {type(teacher).__name__}"
                )
            option_sets = self._filters.option_sets_from_payload(payload)
        except (requests.RequestException, ValueError, TypeError) as exc:
            self._handle_fetch_failure(descriptor, exc, token)
            return None
        except Exception as exc:
            logger.exception("Unexpected error while fetching %s", descriptor.url)
            self._handle_fetch_failure(descriptor, exc, token)
            return None

        with self._lock:
            if self._is_stale(token):
                logger.debug("Discarding stale response for request %d", token)
                return None
            state = self._state
            state.results = results
            state.num_pages = num_pages
            state.current_page = min(max(1, state.current_page), num_pages)
            state.teacher = dict(teacher)
            state.filter_option_sets = option_sets
            state.loading = False
            state.status = STATUS_IDLE
            state.last_error = None
        logger.info(
            "Fetched %d rows from %s (page %d of %d)",
            len(results),
            descriptor.url,
            state.current_page,
            num_pages,
        )
        if self.config.on_fetch_success is not None:
            try:
                self.config.on_fetch_success(payload)
            except Exception:
                logger.exception("on_fetch_success failed for %s", descriptor.url)
        return payload

    def _handle_fetch_failure(
        self, descriptor: RequestDescriptor, error: Exception, token: int
    ) -> None:
        if isinstance(error, requests.HTTPError):
            message = format_http_error(error)
        else:
            message = str(error) or error.__class__.__name__
        with self._lock:
            if self._is_stale(token):
                logger.debug("Discarding stale failure for request %d", token)
                return
            self._state.loading = False
            self._state.status = STATUS_ERROR
            self._state.last_error = message
        logger.error("An error occurred while fetching %s: %s", descriptor.url, message)
        if self.config.on_fetch_error is not None:
            try:
                self.config.on_fetch_error(error)
            except Exception:
                logger.exception("on_fetch_error failed for %s", descriptor.url)

    # Derived state -------------------------------------------------------

    @property
    def state(self) -> ReportState:
        with self._lock:
            snapshot = copy.copy(self._state)
            snapshot.results = list(self._state.results)
            snapshot.filter_option_sets = {
                name: list(options)
                for name, options in self._state.filter_option_sets.items()
            }
            snapshot.teacher = dict(self._state.teacher)
            snapshot.active_filters = self._filters.active_filters
            snapshot.selected_options = self._filters.selected_options
            snapshot.active_sort = self._sorting.active_sort
            return snapshot

    def visible_results(self) -> List[Row]:
        with self._lock:
            results = list(self._state.results)
            if self.config.pagination:
                return results
            return list(self._sorting.apply_sorting(results))

    def view(self) -> ReportView:
        with self._lock:
            return ReportView(
                state=self.state,
                visible_results=self.visible_results(),
                columns=list(self.config.column_definitions()),
                pagination=self.config.pagination,
                max_page_number=self.config.max_page_number,
            )

    def render(self) -> Dict[str, Any]:
        """Drive the injected renderers and collect their output by section."""
        view = self.view()
        state = view.state
        renderers = self.renderers
        sections: Dict[str, Any] = {}

        if renderers.filters is not None:
            sections["filters"] = renderers.filters.render_filters(
                self._filters.definitions,
                state.filter_option_sets,
                state.selected_options,
                self.select_filter,
            )

        # The table is never shown mid-fetch.
        if state.loading:
            loading = renderers.loading
            sections["main"] = loading.render_loading() if loading is not None else None
        elif renderers.table is not None:
            sections["main"] = renderers.table.render_table(
                view.visible_results,
                view.columns,
                self.handle_sort(),
                state.active_sort,
            )
        else:
            sections["main"] = None

        if self.config.pagination and renderers.pagination is not None:
            sections["pagination"] = renderers.pagination.render_pagination(
                state.current_page,
                state.num_pages,
                view.max_page_number,
                self.go_to_page,
            )

        if self.config.export_csv:
            sections["export"] = {
                "exportType": self.config.export_csv,
                "email": state.teacher.get("email"),
                "status": state.export_status,
            }
        return sections

    # Export --------------------------------------------------------------

    def export_csv(self) -> "Future[bool]":
        """Submit a CSV export of the current filters.

        Returns without waiting; ``state.export_status`` moves from
        ``pending`` to ``queued`` or ``failed`` when the submission settles.
        """
        if not self.config.export_csv or self._export is None:
            raise ValueError("This report does not support CSV export")
        with self._lock:
            filters = self._filters.active_filters
            teacher = dict(self._state.teacher)
            self._state.export_status = EXPORT_PENDING
        future = self._export.create_export(self.config.export_csv, filters, teacher)
        future.add_done_callback(self._record_export)
        return future

    def _record_export(self, future: "Future[bool]") -> None:
        error = future.exception()
        if error is not None:
            logger.error(
                "CSV export %s failed unexpectedly",
                self.config.export_csv,
                exc_info=(type(error), error, error.__traceback__),
            )
        queued = error is None and bool(future.result())
        with self._lock:
            self._state.export_status = EXPORT_QUEUED if queued else EXPORT_FAILED


__all__ = [
    "EXPORT_FAILED",
    "EXPORT_PENDING",
    "EXPORT_QUEUED",
    "ReportConfig",
    "ReportDataController",
    "ReportState",
    "ReportView",
    "STATUS_ERROR",
    "STATUS_IDLE",
    "STATUS_LOADING",
]
