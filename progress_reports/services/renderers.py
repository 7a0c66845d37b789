"""Renderer interfaces consumed by the report controller, and JSON renderers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .filters import FilterDefinition, FilterOption
from .sorting import ActiveSort


class TableRenderer(Protocol):
    def render_table(
        self,
        rows: Sequence[Mapping[str, Any]],
        columns: Sequence[Mapping[str, Any]],
        sort_handler: Callable[[str], None],
        current_sort: Optional[ActiveSort],
    ) -> Any: ...


class PaginationRenderer(Protocol):
    def render_pagination(
        self,
        current_page: int,
        number_of_pages: int,
        max_page_number: int,
        select_page: Callable[[int], Any],
    ) -> Any: ...


class FiltersRenderer(Protocol):
    def render_filters(
        self,
        definitions: Sequence[FilterDefinition],
        option_sets: Mapping[str, Sequence[FilterOption]],
        selected: Mapping[str, FilterOption],
        select: Callable[[str, Any], None],
    ) -> Any: ...


class LoadingRenderer(Protocol):
    def render_loading(self) -> Any: ...


@dataclass
class ReportRenderers:
    table: Optional[TableRenderer] = None
    pagination: Optional[PaginationRenderer] = None
    filters: Optional[FiltersRenderer] = None
    loading: Optional[LoadingRenderer] = None


def page_window(current_page: int, number_of_pages: int, max_page_number: int) -> List[int]:
    """Page numbers to show, at most ``max_page_number`` centred on the current page."""
    if max_page_number <= 0:
        return []
    if number_of_pages <= max_page_number:
        return list(range(1, number_of_pages + 1))
    start = max(1, current_page - max_page_number // 2)
    end = start + max_page_number - 1
    if end > number_of_pages:
        end = number_of_pages
        start = end - max_page_number + 1
    return list(range(start, end + 1))


class JsonTableRenderer:
    def render_table(self, rows, columns, sort_handler, current_sort) -> Dict[str, Any]:
        return {
            "rows": [dict(row) for row in rows],
            "columns": [dict(column) for column in columns],
            "currentSort": current_sort.to_dict() if current_sort else None,
        }


class JsonPaginationRenderer:
    def render_pagination(
        self, current_page, number_of_pages, max_page_number, select_page
    ) -> Dict[str, Any]:
        return {
            "currentPage": current_page,
            "numberOfPages": number_of_pages,
            "pages": page_window(current_page, number_of_pages, max_page_number),
        }


class JsonFiltersRenderer:
    def render_filters(self, definitions, option_sets, selected, select) -> List[Dict[str, Any]]:
        rendered = []
        for definition in definitions:
            options = option_sets.get(definition.field) or [definition.default_option]
            current = selected.get(definition.field, definition.default_option)
            rendered.append(
                {
                    "field": definition.field,
                    "label": definition.label,
                    "options": [option.to_dict() for option in options],
                    "selected": current.to_dict(),
                }
            )
        return rendered


class JsonLoadingRenderer:
    def render_loading(self) -> Dict[str, Any]:
        return {"loading": True}


def json_renderers() -> ReportRenderers:
    return ReportRenderers(
        table=JsonTableRenderer(),
        pagination=JsonPaginationRenderer(),
        filters=JsonFiltersRenderer(),
        loading=JsonLoadingRenderer(),
    )
