import pytest

from sapanel import operators
from sapanel.operators import FilterOperator


@pytest.mark.parametrize("op", [op.value for op in FilterOperator])
def test_valid_operators_resolve_to_themselves(op):
    assert operators.is_valid(op)
    assert operators.resolve(op) == FilterOperator(op)
    assert operators.resolve(op).value == op


@pytest.mark.parametrize("op", ["", "EQ", "equals", "ge", "contains", "!=", None, 1])
def test_invalid_operators_fall_back_to_equal(op):
    assert not operators.is_valid(op)
    assert operators.resolve(op) is FilterOperator.EQUAL


def test_operator_set_is_closed():
    names = [op.value for op in operators.valid_operators()]
    assert names == ["eq", "neq", "gt", "gte", "lt", "lte", "like", "nlike", "in", "nin", "null", "nnull", "between"]


def test_value_shapes():
    assert not operators.takes_value(FilterOperator.IS_NULL)
    assert not operators.takes_value(FilterOperator.IS_NOT_NULL)
    assert operators.takes_list(FilterOperator.IN)
    assert operators.takes_list(FilterOperator.NOT_IN)
    assert operators.takes_pair(FilterOperator.BETWEEN)
    assert operators.takes_value(FilterOperator.LIKE)
    assert not operators.takes_list(FilterOperator.EQUAL)


def test_operator_str_is_wire_name():
    assert str(FilterOperator.GREATER_EQ) == "gte"
    assert operators.resolve(FilterOperator.BETWEEN) is FilterOperator.BETWEEN
