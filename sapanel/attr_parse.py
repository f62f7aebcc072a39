import datetime
import decimal
import sapanel
import sqlalchemy
from .errors import ValidationError


def parse_attr(column, attr_val):
    """
    Parse the supplied `attr_val` so it can be saved in the SQLAlchemy `column`

    :param column: SQLAlchemy column
    :param attr_val: incoming field value
    :return: processed value
    :raises ValidationError: when the value can't be converted to the column type
    """
    if attr_val is None and column.default is not None and not callable(column.default.arg):
        return column.default.arg

    if attr_val is None:
        return attr_val

    try:
        python_type = column.type.python_type
    except NotImplementedError as exc:
        """
        This happens when a custom type has been implemented, in which case the user/dev should know how to handle it:
        use a `store_as` callback on the field
        => simply return the attr_val for user-defined classes
        """
        sapanel.log.debug(exc)
        return attr_val

    # skip type coercion on JSON columns, since they could be anything
    if isinstance(column.type, sqlalchemy.types.JSON):
        return attr_val

    if isinstance(attr_val, python_type):
        return attr_val

    """
        Parse datetime and date values for some common representations
        If another format is used, the user should create a custom column type or a `store_as` callback
    """
    try:
        if python_type == datetime.datetime:
            date_str = str(attr_val).replace("T", " ").rstrip("Z")
            if "." in date_str:
                # str(datetime.datetime.now()) => "%Y-%m-%d %H:%M:%S.%f"
                return datetime.datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S.%f")
            if date_str.count(":") == 1:
                # JS datetime-local format
                return datetime.datetime.strptime(date_str, "%Y-%m-%d %H:%M")
            return datetime.datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S")
        if python_type == datetime.date:
            return datetime.datetime.strptime(str(attr_val)[:10], "%Y-%m-%d").date()
        if python_type == datetime.time:
            time_str = str(attr_val)
            if "." in time_str:
                return datetime.datetime.strptime(time_str, "%H:%M:%S.%f").time()
            return datetime.datetime.strptime(time_str, "%H:%M:%S").time()
        if python_type == bool:
            return parse_bool(attr_val)
        if python_type == decimal.Decimal:
            return decimal.Decimal(str(attr_val))
        return python_type(attr_val)
    except (TypeError, ValueError, decimal.InvalidOperation) as exc:
        sapanel.log.debug(f'Invalid {python_type.__name__} {exc} for value "{attr_val}"')
        raise ValidationError(errors={column.key: [f"invalid {python_type.__name__} value {attr_val!r}"]}) from exc


def parse_bool(value) -> bool:
    """
    :param value: bool, number or a string like "true", "1", "on", "no"
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "yes", "on", "y", "t"):
        return True
    if lowered in ("0", "false", "no", "off", "n", "f", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")
