"""Field-based report filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..config import ALL_CLASSROOMS_LABEL, ALL_STUDENTS_LABEL, ALL_UNITS_LABEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterOption:
    name: str
    value: Any = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class FilterDefinition:
    """A filterable field of a report.

    ``source_key`` names the reference list in the report payload that the
    field's options are built from. Custom filters without one keep whatever
    options the caller supplies.
    """

    field: str
    label: str
    default_option: FilterOption
    source_key: Optional[str] = None


BUILTIN_FILTERS: Dict[str, FilterDefinition] = {
    "classroom": FilterDefinition(
        field="classroom_id",
        label="Classroom",
        default_option=FilterOption(ALL_CLASSROOMS_LABEL, ""),
        source_key="classrooms",
    ),
    "student": FilterDefinition(
        field="student_id",
        label="Student",
        default_option=FilterOption(ALL_STUDENTS_LABEL, ""),
        source_key="students",
    ),
    "unit": FilterDefinition(
        field="unit_id",
        label="Unit",
        default_option=FilterOption(ALL_UNITS_LABEL, ""),
        source_key="units",
    ),
}


def get_filter_options(
    records: Optional[Iterable[Mapping[str, Any]]],
    label_field: str,
    value_field: str,
    all_label: str,
) -> List[FilterOption]:
    """Return ``all_label`` followed by one option per record, in input order.

    Duplicates are kept; callers de-duplicate beforehand if they need to.
    """
    options = [FilterOption(all_label, "")]
    for record in records or ():
        options.append(FilterOption(record.get(label_field), record.get(value_field)))
    return options


def resolve_filter_definitions(
    filter_types: Sequence[str],
    custom: Optional[Mapping[str, FilterDefinition]] = None,
) -> List[FilterDefinition]:
    """Map filter type names (``classroom``, ``unit``...) to definitions."""
    custom = custom or {}
    definitions: List[FilterDefinition] = []
    for filter_type in filter_types:
        definition = custom.get(filter_type) or BUILTIN_FILTERS.get(filter_type)
        if definition is None:
            raise KeyError(f"Unknown filter type: {filter_type!r}")
        definitions.append(definition)
    return definitions


class FilterStrategy:
    """Holds the selected value of each declared filter field."""

    def __init__(
        self,
        definitions: Sequence[FilterDefinition],
        on_change: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._definitions: Dict[str, FilterDefinition] = {
            definition.field: definition for definition in definitions
        }
        self._on_change = on_change
        self._active: Dict[str, Any] = {}
        self._selected: Dict[str, FilterOption] = {
            definition.field: definition.default_option for definition in definitions
        }

    @property
    def definitions(self) -> List[FilterDefinition]:
        return list(self._definitions.values())

    @property
    def active_filters(self) -> Dict[str, Any]:
        return dict(self._active)

    @property
    def selected_options(self) -> Dict[str, FilterOption]:
        return dict(self._selected)

    def definition_for(self, field: str) -> FilterDefinition:
        try:
            return self._definitions[field]
        except KeyError:
            raise KeyError(f"Undeclared filter field: {field!r}") from None

    def select_field(self, field: str, value: Any) -> None:
        self.definition_for(field)
        logger.debug("Filter %s set to %r", field, value)
        self._active[field] = value
        if self._on_change is not None:
            self._on_change()

    def select_option(self, field: str, option: FilterOption) -> None:
        self.definition_for(field)
        self._selected[field] = option
        self.select_field(field, option.value)

    def option_sets_from_payload(
        self, payload: Mapping[str, Any]
    ) -> Dict[str, List[FilterOption]]:
        option_sets: Dict[str, List[FilterOption]] = {}
        for definition in self._definitions.values():
            if not definition.source_key:
                continue
            records = payload.get(definition.source_key) or []
            for record in records:
                if not isinstance(record, Mapping):
                    raise TypeError(
                        f"Unexpected {definition.source_key} entry {record!r}"
                    )
            option_sets[definition.field] = get_filter_options(
                records,
                "name",
                "id",
                definition.default_option.name,
            )
        return option_sets
