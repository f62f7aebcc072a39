"""
Filter operators

The operator set is closed, the wire name of an operator is its enum value:

    ?users[filters][age][gte]=18
    ?filter[status][in]=active,pending

Unrecognized operator names resolve to EQUAL. Value shape validation
is not done here, the data provider checks the values when it builds the query.
"""

from enum import Enum
from typing import List


class FilterOperator(str, Enum):
    EQUAL = "eq"
    NOT_EQUAL = "neq"
    GREATER_THAN = "gt"
    GREATER_EQ = "gte"
    LESS_THAN = "lt"
    LESS_EQ = "lte"
    LIKE = "like"
    NOT_LIKE = "nlike"
    IN = "in"
    NOT_IN = "nin"
    IS_NULL = "null"
    IS_NOT_NULL = "nnull"
    BETWEEN = "between"

    def __str__(self):
        return self.value


_OPERATORS = {op.value: op for op in FilterOperator}

# operators that ignore the filter value
NULL_OPERATORS = frozenset((FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL))
# operators that take a list of values
LIST_OPERATORS = frozenset((FilterOperator.IN, FilterOperator.NOT_IN))
# operators that take exactly two values
PAIR_OPERATORS = frozenset((FilterOperator.BETWEEN,))


def valid_operators() -> List[FilterOperator]:
    """
    :return: all operators, in declaration order
    """
    return list(FilterOperator)


def is_valid(op) -> bool:
    """
    :param op: operator name (or FilterOperator)
    :return: True if `op` names one of the supported operators
    """
    if isinstance(op, FilterOperator):
        return True
    return isinstance(op, str) and op in _OPERATORS


def resolve(op) -> FilterOperator:
    """
    :param op: operator name
    :return: the corresponding operator, EQUAL if `op` is not recognized
    """
    if isinstance(op, FilterOperator):
        return op
    if is_valid(op):
        return _OPERATORS[op]
    return FilterOperator.EQUAL


def takes_value(op: FilterOperator) -> bool:
    return op not in NULL_OPERATORS


def takes_list(op: FilterOperator) -> bool:
    return op in LIST_OPERATORS


def takes_pair(op: FilterOperator) -> bool:
    return op in PAIR_OPERATORS
