import pytest
from werkzeug.datastructures import MultiDict

from sapanel.errors import ValidationError
from sapanel.operators import FilterOperator
from sapanel.query import ASC, DESC, LOGIC_AND, LOGIC_OR, VIEW_GRID, Filter, Query, QueryDefaults, Sort
from sapanel.query_parser import parse_filter_json, parse_flat, parse_nested, parse_query, sorts_from_pairs

DEFAULTS = QueryDefaults(per_page=15, max_per_page=50, sorts=(Sort("position", ASC),))


def test_nested_hyphenated_namespace():
    query = parse_query("page-sections[sort][id]=asc&page-sections[page]=1&page-sections[per_page]=10", "page-sections")
    assert query.sorts == (Sort("id", ASC),)
    assert query.page == 1
    assert query.per_page == 10


def test_nested_last_sort_occurrence_wins():
    query = parse_query("page-sections[sort][id]=desc&page-sections[sort][id]=asc", "page-sections")
    assert query.sorts == (Sort("id", ASC),)


def test_last_occurrence_takes_the_last_position():
    query = parse_nested("posts[sort][id]=desc&posts[sort][title]=asc&posts[sort][id]=asc", "posts")
    assert query.sorts == (Sort("title", ASC), Sort("id", ASC))


@pytest.mark.parametrize("direction", ["up", "ascending", "", "1", "DESCENDING"])
def test_invalid_sort_directions_are_dropped(direction):
    query = parse_query(f"posts[sort][title]={direction}&posts[sort][id]=desc", "posts")
    assert query.sorts == (Sort("id", DESC),)


def test_sort_direction_is_case_insensitive():
    query = parse_nested("posts[sort][title]=DESC", "posts")
    assert query.sorts == (Sort("title", DESC),)


def test_nested_no_match():
    assert parse_nested("users[page]=2&sort=name", "posts") is None
    # another resource with the same prefix
    assert parse_nested("page-sections-old[page]=2", "page-sections") is None


def test_nested_missing_keys_use_defaults():
    query = parse_query("page-sections[search]=head", "page-sections", DEFAULTS)
    assert query.page == 1
    assert query.per_page == 15
    assert query.sorts == (Sort("position", ASC),)
    assert query.filters == ()
    assert query.search == "head"


def test_no_parameters_yield_defaults():
    query = parse_query("", "posts", DEFAULTS)
    assert query == Query(sorts=DEFAULTS.sorts, per_page=15)


def test_nested_filters():
    query = parse_nested(
        "posts[filters][status][in]=published,draft&posts[filters][views][gte]=5&posts[filters][title]=First&posts[include]=tags,comments",
        "posts",
    )
    (group,) = query.filters
    assert group.logic == LOGIC_AND
    assert group.filters == (
        Filter("status", FilterOperator.IN, ("published", "draft")),
        Filter("views", FilterOperator.GREATER_EQ, "5"),
        Filter("title", FilterOperator.EQUAL, "First"),
    )
    assert query.requested_relations == frozenset(("tags", "comments"))


def test_nested_unknown_operator_resolves_to_equal():
    query = parse_nested("posts[filters][status][contains]=draft", "posts")
    assert query.filters[0].filters == (Filter("status", FilterOperator.EQUAL, "draft"),)


def test_nested_via_and_view():
    query = parse_nested("posts[viaResource]=users&posts[viaResourceId]=3&posts[viaRelationship]=posts&view=grid", "posts")
    assert query.via_resource == "users"
    assert query.via_resource_id == "3"
    assert query.via_relationship == "posts"
    assert query.view == VIEW_GRID


def test_pagination_values():
    query = parse_nested("posts[page]=abc&posts[per_page]=-4", "posts", DEFAULTS)
    assert query.page == 1
    assert query.per_page == 15
    query = parse_nested("posts[page]=3&posts[per_page]=500", "posts", DEFAULTS)
    assert query.page == 3
    assert query.per_page == DEFAULTS.max_per_page
    assert query.offset == 100


def test_flat_sorts():
    query = parse_flat("sort=-created_at,name&direction=desc")
    assert query.sorts == (Sort("created_at", DESC), Sort("name", DESC))
    query = parse_flat("sort=name&direction=sideways")
    assert query.sorts == ()
    query = parse_flat("sort_by=title&sort_order=desc")
    assert query.sorts == (Sort("title", DESC),)


def test_flat_format():
    query = parse_query("sort=name&direction=asc&page=2&per_page=5&filter[status]=active&filter[age][gte]=18&search=jo&include=profile", "users")
    assert query.sorts == (Sort("name", ASC),)
    assert query.page == 2
    assert query.per_page == 5
    assert query.search == "jo"
    assert query.requested_relations == frozenset(("profile",))
    assert query.filters[0].filters == (
        Filter("status", FilterOperator.EQUAL, "active"),
        Filter("age", FilterOperator.GREATER_EQ, "18"),
    )


def test_flat_filters_without_namespace():
    # bracketed flat keys are never taken for a namespace
    query = parse_query("filter[status][in]=active,pending")
    assert query.filters[0].filters == (Filter("status", FilterOperator.IN, ("active", "pending")),)


def test_filter_value_shapes():
    query = parse_flat("filter[deleted_at][null]=whatever&filter[views][between]=1,5&filter[score][between]=1")
    assert query.filters[0].filters == (
        Filter("deleted_at", FilterOperator.IS_NULL, None),
        Filter("views", FilterOperator.BETWEEN, ("1", "5")),
    )


def test_json_filter():
    query = parse_flat('filter=[{"field": "status", "op": "in", "value": ["active", "pending"]}, {"name": "name", "op": "like", "val": "jo"}]')
    (group,) = query.filters
    assert group.logic == LOGIC_OR
    assert group.filters == (
        Filter("status", FilterOperator.IN, ("active", "pending")),
        Filter("name", FilterOperator.LIKE, "jo"),
    )


def test_json_filter_groups():
    groups = parse_filter_json(
        '[{"logic": "or", "filters": [{"field": "a", "value": 1}, {"field": "b", "value": 2}]},'
        ' {"logic": "and", "filters": [{"field": "c", "op": "nnull"}, {"logic": "or", "filters": []}]}]'
    )
    assert [group.logic for group in groups] == [LOGIC_OR, LOGIC_AND]
    # the nested group is skipped
    assert groups[1].filters == (Filter("c", FilterOperator.IS_NOT_NULL, None),)


def test_json_filter_errors():
    with pytest.raises(ValidationError):
        parse_filter_json("{not json")
    with pytest.raises(ValidationError):
        parse_filter_json('{"logic": "xor", "filters": [{"field": "a"}]}')


def test_multidict_input():
    args = MultiDict([("posts[sort][id]", "desc"), ("posts[page]", "2")])
    query = parse_query(args, "posts")
    assert query.sorts == (Sort("id", DESC),)
    assert query.page == 2


def test_query_is_immutable():
    query = parse_query("posts[page]=2", "posts")
    with pytest.raises(AttributeError):
        query.page = 3


def test_sorts_from_pairs():
    assert sorts_from_pairs((("name", "ASC"), ("id", "down"), ("created_at", "desc"))) == (Sort("name", ASC), Sort("created_at", DESC))


@pytest.mark.parametrize(
    "raw",
    [
        'filter={"field": 5, "op": "eq", "value": 1}',
        'filter=[{"field": ["title"], "value": 1}]',
        'filter={"field": "title", "op": 3, "value": 1}',
        'filter={"logic": "or", "filters": [{"name": {"a": 1}, "value": 1}]}',
    ],
)
def test_json_filter_with_invalid_types(raw):
    with pytest.raises(ValidationError) as exc_info:
        parse_query(raw, "posts")
    assert exc_info.value.status_code == 400


def test_query_string_order_is_kept_for_every_input():
    raw = "posts[sort][id]=desc&posts[sort][title]=asc&posts[sort][id]=asc"
    expected = (Sort("title", ASC), Sort("id", ASC))
    assert parse_query(raw, "posts").sorts == expected
    assert parse_query(raw.encode(), "posts").sorts == expected
    assert parse_query("?" + raw, "posts").sorts == expected
    pairs = [("posts[sort][id]", "desc"), ("posts[sort][title]", "asc"), ("posts[sort][id]", "asc")]
    assert parse_query(pairs, "posts").sorts == expected


def test_flat_sort_last_occurrence_takes_the_last_position():
    query = parse_flat("sort=-id,title&sort=id")
    assert query.sorts == (Sort("title", ASC), Sort("id", ASC))


def test_view_is_normalized():
    assert parse_query("view=GRID").is_grid
    assert not parse_query("view=cards").is_grid
    assert not parse_query("posts[page]=1", "posts").is_grid
