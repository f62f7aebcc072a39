"""
Normalized query representation, created by the query parser for every request.

All types are immutable: a Query is consumed once by the data provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Tuple

from .operators import FilterOperator

ASC = "asc"
DESC = "desc"
SORT_DIRECTIONS = (ASC, DESC)

LOGIC_AND = "and"
LOGIC_OR = "or"
FILTER_LOGICS = (LOGIC_AND, LOGIC_OR)

VIEW_TABLE = "table"
VIEW_GRID = "grid"


@dataclass(frozen=True)
class Sort:
    column: str
    direction: str = ASC

    def __post_init__(self):
        if self.direction not in SORT_DIRECTIONS:
            raise ValueError(f"Invalid sort direction {self.direction!r}")

    @property
    def descending(self) -> bool:
        return self.direction == DESC


@dataclass(frozen=True)
class Filter:
    field: str
    operator: FilterOperator = FilterOperator.EQUAL
    value: Any = None


@dataclass(frozen=True)
class FilterGroup:
    """
    Filters combined with `logic`, groups can't be nested
    """

    logic: str = LOGIC_AND
    filters: Tuple[Filter, ...] = ()

    def __post_init__(self):
        if self.logic not in FILTER_LOGICS:
            raise ValueError(f"Invalid filter logic {self.logic!r}")


@dataclass(frozen=True)
class QueryDefaults:
    """
    Values used by the parser when a parameter is missing
    """

    per_page: int = 10
    max_per_page: int = 100
    sorts: Tuple[Sort, ...] = ()

    @classmethod
    def from_config(cls, sorts=(), per_page=None) -> QueryDefaults:
        """
        :param sorts: resource default order
        :param per_page: resource default page size, DEFAULT_PER_PAGE config when None
        """
        from .config import get_int_config

        max_per_page = get_int_config("MAX_PER_PAGE", cls.max_per_page)
        if per_page is None:
            per_page = get_int_config("DEFAULT_PER_PAGE", cls.per_page)
        return cls(per_page=min(per_page, max_per_page), max_per_page=max_per_page, sorts=tuple(sorts))


@dataclass(frozen=True)
class Query:
    filters: Tuple[FilterGroup, ...] = ()
    sorts: Tuple[Sort, ...] = ()
    page: int = 1
    per_page: int = 10
    requested_relations: FrozenSet[str] = field(default_factory=frozenset)
    search: str = ""
    view: str = VIEW_TABLE
    via_resource: Optional[str] = None
    via_resource_id: Optional[str] = None
    via_relationship: Optional[str] = None

    def __post_init__(self):
        if self.page < 1:
            raise ValueError(f"Invalid page {self.page}")
        if self.per_page < 1:
            raise ValueError(f"Invalid per_page {self.per_page}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def is_grid(self) -> bool:
        return self.view == VIEW_GRID
