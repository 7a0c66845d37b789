"""Field-based report sorting shared by client-side and server-side reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]
# A callable is a client-side sort key; a string is the token sent to the server.
SortRule = Union[Callable[[Row], Any], str]


class SortConfigurationError(ValueError):
    """Raised for sort keys that are not part of the registered configuration."""


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    def toggled(self) -> "SortDirection":
        if self is SortDirection.ASCENDING:
            return SortDirection.DESCENDING
        return SortDirection.ASCENDING


@dataclass(frozen=True)
class ActiveSort:
    key: str
    direction: SortDirection = SortDirection.ASCENDING

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.key, "direction": self.direction.value}


@dataclass(frozen=True)
class SortDefinition:
    config: Mapping[str, SortRule]
    default: str


def field_sort_key(field: str) -> Callable[[Row], Tuple[bool, Any]]:
    """Sort key for a single row field; missing values sort last."""

    def key(row: Row) -> Tuple[bool, Any]:
        value = row.get(field)
        if value is None:
            return (True, "")
        if isinstance(value, str):
            return (False, value.casefold())
        return (False, value)

    return key


class SortStrategy:
    def __init__(self) -> None:
        self._config: Dict[str, SortRule] = {}
        self._active: Optional[ActiveSort] = None

    @property
    def active_sort(self) -> Optional[ActiveSort]:
        return self._active

    @property
    def keys(self) -> List[str]:
        return list(self._config)

    def define_sorting(self, config: Mapping[str, SortRule], default_key: str) -> None:
        if default_key not in config:
            raise SortConfigurationError(
                f"Default sort key {default_key!r} is not configured "
                f"(available: {', '.join(config) or 'none'})"
            )
        self._config = dict(config)
        self._active = ActiveSort(default_key, SortDirection.ASCENDING)
        logger.debug("Sorting defined keys=%s default=%s", list(config), default_key)

    def _rule(self, key: str) -> SortRule:
        try:
            return self._config[key]
        except KeyError:
            raise SortConfigurationError(f"Unknown sort key: {key!r}") from None

    def apply_sorting(self, rows: Sequence[Row]) -> Sequence[Row]:
        """Sort ``rows`` client-side when the active rule is a key function.

        Server-ordered rules return ``rows`` as given. ``sorted`` is stable in
        both directions, so rows comparing equal keep their relative order.
        """
        if self._active is None:
            return list(rows)
        rule = self._rule(self._active.key)
        if not callable(rule):
            return rows
        return sorted(
            rows,
            key=rule,
            reverse=self._active.direction is SortDirection.DESCENDING,
        )

    def sort_results(self, after_sort: Callable[[], Any], key: str) -> None:
        self._rule(key)
        if self._active is not None and self._active.key == key:
            self._active = ActiveSort(key, self._active.direction.toggled())
        else:
            self._active = ActiveSort(key, SortDirection.ASCENDING)
        logger.debug(
            "Sort changed to %s %s", self._active.key, self._active.direction.value
        )
        after_sort()

    def sort_params(self) -> Dict[str, str]:
        if self._active is None:
            return {}
        rule = self._rule(self._active.key)
        token = rule if isinstance(rule, str) else self._active.key
        return {
            "sort[field]": token,
            "sort[direction]": self._active.direction.value,
        }
