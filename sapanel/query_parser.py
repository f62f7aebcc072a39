"""
Query string parsing

Two wire formats are accepted:

- nested, namespaced with the resource slug (the panel ui uses this one):
    users[sort][name]=asc&users[page]=2&users[per_page]=25&users[filters][age][gte]=18

- flat (external clients):
    sort=name&direction=asc&page=2&per_page=25&filter[age][gte]=18&include=profile
    sort=-created_at,name
    filter=[{"field": "status", "op": "eq", "value": "active"}, ...]

Parsing is a pure function of the query string and the defaults:
invalid sort directions and malformed pagination values are ignored.
"""

import json
import re
from collections import OrderedDict
from typing import Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl

from werkzeug.datastructures import MultiDict

import sapanel
from . import operators
from .errors import ValidationError
from .query import (
    ASC,
    DESC,
    FILTER_LOGICS,
    LOGIC_AND,
    LOGIC_OR,
    SORT_DIRECTIONS,
    VIEW_GRID,
    VIEW_TABLE,
    Filter,
    FilterGroup,
    Query,
    QueryDefaults,
    Sort,
)

FLAT_FILTER_RE = re.compile(r"^filters?\[([^\]]+)\](?:\[([^\]]*)\])?$")
VIA_PARAMS = ("viaResource", "viaResourceId", "viaRelationship")
# bracketed flat format keys, never taken for a namespace
FLAT_BRACKET_PREFIXES = ("filter", "filters", "fields", "page")


def to_pairs(raw) -> List[Tuple[str, str]]:
    """
    :param raw: raw query string (with or without leading "?", e.g. request.query_string),
                a MultiDict (e.g. request.args) or a list of (key, value) pairs
    :return: the (key, value) pairs in query string order
    """
    if raw is None:
        return []
    if isinstance(raw, MultiDict):
        # values are grouped by key, the relative order of different keys is lost
        return list(raw.items(multi=True))
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return parse_qsl(raw.lstrip("?"), keep_blank_values=True)


def parse_query(raw, namespace: str = "", defaults: QueryDefaults = None) -> Query:
    """
    Parse the query string, the nested format takes precedence over the flat format

    :param raw: raw query string
    :param namespace: resource slug used as the nested format prefix, e.g. "page-sections"
    :param defaults: QueryDefaults
    :return: Query
    """
    pairs = to_pairs(raw)
    result = parse_nested(pairs, namespace, defaults)
    if result is None:
        sapanel.log.debug(f"No nested query parameters for '{namespace}', parsing flat format")
        result = parse_flat(pairs, defaults)
    return result


def parse_nested(raw, namespace: str, defaults: QueryDefaults = None) -> Optional[Query]:
    """
    :param raw: raw query string
    :param namespace: resource slug, if empty any "<key>[...]" prefix is accepted
    :param defaults: QueryDefaults
    :return: Query, or None if no parameter is namespaced with `namespace`
    """
    pairs = to_pairs(raw)
    args = MultiDict(pairs)
    defaults = defaults or QueryDefaults()
    builder = _QueryBuilder(defaults)
    found = False

    for key, value in pairs:
        inner = nested_inner_key(key, namespace)
        if inner is None:
            continue
        found = True
        parts = inner.split("][")
        head = parts[0]
        if head == "sort" and len(parts) == 2:
            builder.add_sort(parts[1], value)
        elif head == "filters" and len(parts) in (2, 3):
            op_name = parts[2] if len(parts) == 3 else None
            builder.add_filter(parts[1], op_name, value)
        elif len(parts) > 1:
            sapanel.log.debug(f"Ignoring query parameter {key}")
        elif head == "page":
            builder.set_page(value)
        elif head == "per_page":
            builder.set_per_page(value)
        elif head == "search":
            builder.search = value
        elif head == "view":
            builder.view = normalize_view(value)
        elif head == "include":
            builder.add_includes(value)
        elif head in VIA_PARAMS:
            builder.set_via(head, value)

    if not found:
        return None

    # top level parameters override the nested ones
    for via_param in VIA_PARAMS:
        if args.get(via_param):
            builder.set_via(via_param, args.get(via_param))
    if args.get("view"):
        builder.view = normalize_view(args.get("view"))

    return builder.build()


def parse_flat(raw, defaults: QueryDefaults = None) -> Query:
    """
    :param raw: raw query string
    :param defaults: QueryDefaults
    :return: Query, defaults are used for the missing parameters
    """
    pairs = to_pairs(raw)
    args = MultiDict(pairs)
    defaults = defaults or QueryDefaults()
    builder = _QueryBuilder(defaults)

    if "page" in args:
        builder.set_page(args.get("page"))
    if "per_page" in args:
        builder.set_per_page(args.get("per_page"))
    builder.search = args.get("search", "")
    if args.get("view"):
        builder.view = normalize_view(args.get("view"))
    for include in args.getlist("include"):
        builder.add_includes(include)
    for via_param in VIA_PARAMS:
        if args.get(via_param):
            builder.set_via(via_param, args.get(via_param))

    direction = args.get("direction") or args.get("sort_direction") or args.get("sort_order")
    for sort_csv in args.getlist("sort"):
        for sort_attr in sort_csv.split(","):
            sort_attr = sort_attr.strip()
            if sort_attr.startswith("-"):
                # The sort order for each sort field is ascending unless it is prefixed with a minus
                builder.add_sort(sort_attr[1:], DESC)
            elif sort_attr:
                builder.add_sort(sort_attr, direction or ASC)
    sort_column = args.get("sort_column") or args.get("sort_by")
    if sort_column:
        builder.add_sort(sort_column, direction or ASC)

    for key, value in pairs:
        if key == "filter":
            for group in parse_filter_json(value):
                builder.add_group(group)
            continue
        filter_attr = FLAT_FILTER_RE.match(key)
        if filter_attr:
            builder.add_filter(filter_attr.group(1), filter_attr.group(2), value)

    return builder.build()


def nested_inner_key(key: str, namespace: str) -> Optional[str]:
    """
    :param key: query parameter name, e.g. "page-sections[sort][id]"
    :param namespace: resource slug, e.g. "page-sections"
    :return: the key without the namespace brackets, e.g. "sort][id", None if the key is not namespaced
    """
    if namespace:
        prefix = namespace + "["
        if not key.startswith(prefix) or not key.endswith("]"):
            return None
        inner = key[len(prefix) : -1]
    else:
        open_bracket = key.find("[")
        if open_bracket <= 0 or not key.endswith("]"):
            return None
        if key[:open_bracket] in FLAT_BRACKET_PREFIXES:
            return None
        inner = key[open_bracket + 1 : -1]
    return inner or None


def normalize_view(raw: str) -> str:
    return VIEW_GRID if raw.strip().lower() == VIEW_GRID else VIEW_TABLE


def parse_filter_json(raw: str) -> List[FilterGroup]:
    """
    Parse a json `filter=` argument, accepted forms:
    - a filter object: {"field": "name", "op": "like", "value": "jo"} ("name" and "val" are accepted too)
    - a list of filter objects, combined with "or"
    - a group: {"logic": "or", "filters": [...]}
    - a list of groups

    :param raw: json string
    :return: list of FilterGroups
    """
    try:
        filters = json.loads(raw)
    except json.decoder.JSONDecodeError:
        raise ValidationError("Invalid filter format, expected json")

    if isinstance(filters, dict):
        filters = [filters]
    if not isinstance(filters, list):
        raise ValidationError(f"Invalid filter format {raw}")

    if filters and all(_is_group(item) for item in filters):
        return [group for group in (_json_group(item) for item in filters) if group is not None]

    group = _json_group({"logic": LOGIC_OR if len(filters) > 1 else LOGIC_AND, "filters": filters})
    return [group] if group is not None else []


def _is_group(item) -> bool:
    return isinstance(item, dict) and "filters" in item


def _json_group(item: dict) -> Optional[FilterGroup]:
    logic = str(item.get("logic", LOGIC_AND)).lower()
    if logic not in FILTER_LOGICS:
        raise ValidationError(f'Invalid filter logic "{logic}"')
    filters = []
    for filt in item.get("filters") or []:
        if not isinstance(filt, dict) or _is_group(filt):
            # nested groups are not supported
            sapanel.log.warning(f"Invalid filter '{filt}'")
            continue
        field_name = filt.get("field", filt.get("name"))
        if not field_name:
            raise ValidationError(f'Invalid filter "{filt}", no field')
        if not isinstance(field_name, str):
            raise ValidationError(f'Invalid filter "{filt}", the field must be a string')
        op_name = filt.get("op", filt.get("operator"))
        if op_name is not None and not isinstance(op_name, str):
            raise ValidationError(f'Invalid filter "{filt}", the operator must be a string')
        value = filt.get("value", filt.get("val"))
        result = build_filter(field_name, op_name, value)
        if result is not None:
            filters.append(result)
    if not filters:
        return None
    return FilterGroup(logic=logic, filters=tuple(filters))


def build_filter(field_name: str, op_name: Optional[str], value) -> Optional[Filter]:
    """
    Create a Filter, shaping the value after the operator:
    - null/nnull: the value is ignored
    - in/nin: comma separated values are split
    - between: exactly two values, the filter is dropped otherwise

    :return: Filter or None if the filter has to be dropped
    """
    field_name = (field_name or "").strip()
    if not field_name:
        return None
    if op_name and not operators.is_valid(op_name):
        sapanel.log.debug(f"Unknown filter operator '{op_name}' for {field_name}, using '{operators.FilterOperator.EQUAL}'")
    operator = operators.resolve(op_name) if op_name else operators.FilterOperator.EQUAL

    if not operators.takes_value(operator):
        value = None
    elif operators.takes_list(operator):
        value = _split_values(value)
    elif operators.takes_pair(operator):
        value = _split_values(value)
        if len(value) != 2:
            sapanel.log.debug(f"Dropping between filter for {field_name}: {value}")
            return None
        value = tuple(value)
    return Filter(field=field_name, operator=operator, value=value)


def _split_values(value) -> Tuple:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return tuple(item.strip() for item in str(value).split(","))


class _QueryBuilder:
    """
    Mutable accumulator, produces the immutable Query
    """

    def __init__(self, defaults: QueryDefaults) -> None:
        self.defaults = defaults
        self.page = 1
        self.per_page = defaults.per_page
        self.sorts = OrderedDict()
        self.filters = []
        self.groups = []
        self.includes = set()
        self.search = ""
        self.view = VIEW_TABLE
        self.via = {}

    def set_page(self, value) -> None:
        page = _positive_int(value)
        if page:
            self.page = page

    def set_per_page(self, value) -> None:
        per_page = _positive_int(value)
        if per_page:
            self.per_page = min(per_page, self.defaults.max_per_page)

    def add_sort(self, column: str, direction) -> None:
        column = (column or "").strip()
        direction = str(direction or "").strip().lower()
        if not column:
            return
        if direction not in SORT_DIRECTIONS:
            sapanel.log.debug(f"Dropping sort {column}: invalid direction '{direction}'")
            return
        # the last occurrence of a column wins
        self.sorts.pop(column, None)
        self.sorts[column] = direction

    def add_filter(self, field_name: str, op_name: Optional[str], value) -> None:
        result = build_filter(field_name, op_name, value)
        if result is not None:
            self.filters.append(result)

    def add_group(self, group: FilterGroup) -> None:
        self.groups.append(group)

    def add_includes(self, csv: str) -> None:
        self.includes.update(inc.strip() for inc in csv.split(",") if inc.strip())

    def set_via(self, name: str, value: str) -> None:
        self.via[name] = value

    def build(self) -> Query:
        groups = list(self.groups)
        if self.filters:
            groups.insert(0, FilterGroup(logic=LOGIC_AND, filters=tuple(self.filters)))
        sorts = tuple(Sort(column, direction) for column, direction in self.sorts.items())
        return Query(
            filters=tuple(groups),
            sorts=sorts or tuple(self.defaults.sorts),
            page=self.page,
            per_page=self.per_page,
            requested_relations=frozenset(self.includes),
            search=self.search or "",
            view=self.view,
            via_resource=self.via.get("viaResource"),
            via_resource_id=self.via.get("viaResourceId"),
            via_relationship=self.via.get("viaRelationship"),
        )


def _positive_int(value) -> Optional[int]:
    try:
        result = int(value)
    except (TypeError, ValueError):
        return None
    return result if result > 0 else None


def sorts_from_pairs(pairs: Iterable) -> Tuple[Sort, ...]:
    """
    :param pairs: iterable of (column, direction) tuples, e.g. a resource default order
    :return: tuple of Sort, invalid directions are dropped
    """
    result = []
    for column, direction in pairs:
        direction = str(direction).lower()
        if direction in SORT_DIRECTIONS:
            result.append(Sort(column, direction))
    return tuple(result)
