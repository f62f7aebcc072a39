"""
Field definitions

A resource declares an ordered list of fields, e.g.

    def fields(self):
        return [
            ID(),
            Text("Name").required().searchable(),
            Email("Email").hide_on_api(),
            BelongsTo("Team", resource="teams"),
            HasMany("Posts", resource="posts"),
        ]

The field key defaults to the snake_cased name and must match a mapped column or relationship
of the resource model, unless the field is declared `virtual()`.

Every relation field has one of the RelationShape values,
the serializer and the data provider dispatch on this closed set.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .context import Channel, OutputContext, OutputView

# Visibility flags, serialized in the field view "context"
HIDE_ON_LIST = "hide_on_list"
HIDE_ON_DETAIL = "hide_on_detail"
HIDE_ON_CREATE = "hide_on_create"
HIDE_ON_UPDATE = "hide_on_update"
HIDE_ON_API = "hide_on_api"
# hidden on the grid (card) layout of the index, the table layout still shows the field
HIDE_ON_GRID = "hide_on_grid"
VISIBILITY_FLAGS = (HIDE_ON_LIST, HIDE_ON_DETAIL, HIDE_ON_CREATE, HIDE_ON_UPDATE, HIDE_ON_API, HIDE_ON_GRID)

_VIEW_FLAGS = {
    OutputView.INDEX: frozenset((HIDE_ON_LIST,)),
    OutputView.GRID: frozenset((HIDE_ON_LIST, HIDE_ON_GRID)),
    OutputView.DETAIL: frozenset((HIDE_ON_DETAIL,)),
    OutputView.CREATE: frozenset((HIDE_ON_CREATE,)),
    OutputView.UPDATE: frozenset((HIDE_ON_UPDATE,)),
}
_CHANNEL_FLAGS = {
    Channel.INTERNAL: frozenset(),
    Channel.EXTERNAL: frozenset((HIDE_ON_API,)),
}


class RelationShape(str, Enum):
    # many-to-one (belongs to), a single related record
    SCALAR = "scalar"
    # one-to-one (has one)
    DETAIL = "detail"
    # one-to-many (has many)
    COLLECTION = "collection"
    # many-to-many, through an association table
    CONNECT = "connect"
    # polymorphic many-to-one, <key>_type + <key>_id columns on the owner
    POLY_LINK = "poly_link"
    # polymorphic one-to-many, the related rows point back with type + id columns
    POLY_COLLECTION = "poly_collection"


def to_key(name: str) -> str:
    """
    :param name: display name, e.g. "Created At"
    :return: snake_cased key, e.g. "created_at"
    """
    key = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name.strip())
    key = re.sub(r"[^0-9a-zA-Z]+", "_", key)
    return key.strip("_").lower()


def hidden_flags_for(context: OutputContext) -> frozenset:
    """
    :return: the visibility flags that hide a field in `context`
    """
    return _VIEW_FLAGS[context.view] | _CHANNEL_FLAGS[context.channel]


class Field:
    """
    Base field, the builder methods return the field so they can be chained
    """

    view = "text-field"
    # wire "type", None: derived from the column type
    type = None
    shape = None

    def __init__(self, name: str, key: Optional[str] = None) -> None:
        self.name = name
        self.key = key or to_key(name)
        self.flags = set()
        self.is_required = False
        self.is_read_only = False
        self.is_virtual = False
        self.is_searchable = False
        self.store_callback = None
        self.resolve_callback = None
        self.props = {}

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.key}>"

    @property
    def is_relation(self) -> bool:
        return self.shape is not None

    # visibility
    def hide_on_list(self) -> Field:
        self.flags.add(HIDE_ON_LIST)
        return self

    def hide_on_detail(self) -> Field:
        self.flags.add(HIDE_ON_DETAIL)
        return self

    def hide_on_create(self) -> Field:
        self.flags.add(HIDE_ON_CREATE)
        return self

    def hide_on_update(self) -> Field:
        self.flags.add(HIDE_ON_UPDATE)
        return self

    def hide_on_api(self) -> Field:
        self.flags.add(HIDE_ON_API)
        return self

    def hide_on_grid(self) -> Field:
        self.flags.add(HIDE_ON_GRID)
        return self

    def only_on_list(self) -> Field:
        self.flags.update((HIDE_ON_DETAIL, HIDE_ON_CREATE, HIDE_ON_UPDATE))
        return self

    def only_on_detail(self) -> Field:
        self.flags.update((HIDE_ON_LIST, HIDE_ON_CREATE, HIDE_ON_UPDATE))
        return self

    def only_on_form(self) -> Field:
        self.flags.update((HIDE_ON_LIST, HIDE_ON_DETAIL))
        return self

    def hidden_for(self, context: OutputContext) -> bool:
        return bool(self.flags & hidden_flags_for(context))

    def hidden_on_channel(self, channel: Channel) -> bool:
        """
        :return: True if the field is hidden in every view of `channel`, it can't be filtered or sorted on either
        """
        return bool(self.flags & _CHANNEL_FLAGS[channel])

    @property
    def context(self) -> str:
        """
        :return: the visibility flags as sent to the client, e.g. "hide_on_api hide_on_list"
        """
        return " ".join(flag for flag in VISIBILITY_FLAGS if flag in self.flags)

    # behavior
    def required(self) -> Field:
        self.is_required = True
        return self

    def read_only(self) -> Field:
        self.is_read_only = True
        return self

    def virtual(self) -> Field:
        """
        The field is not stored on the model, its value is used by the data provider hooks
        or computed by the `resolve` callback
        """
        self.is_virtual = True
        return self

    def searchable(self) -> Field:
        self.is_searchable = True
        return self

    def with_props(self, key: str, value: Any) -> Field:
        self.props[key] = value
        return self

    def store_as(self, fn: Callable[[Any], Any]) -> Field:
        """
        :param fn: called with the incoming value, returns the value to be stored
        """
        self.store_callback = fn
        return self

    def resolve(self, fn: Callable[[Any, Any], Any]) -> Field:
        """
        :param fn: called with (value, instance), returns the value to be serialized
        """
        self.resolve_callback = fn
        return self

    def store(self, value: Any) -> Any:
        if self.store_callback is None:
            return value
        return self.store_callback(value)

    def resolve_value(self, value: Any, instance: Any) -> Any:
        if self.resolve_callback is None:
            return value
        return self.resolve_callback(value, instance)


class ID(Field):
    view = "id-field"

    def __init__(self, name: str = "ID", key: str = "id") -> None:
        super().__init__(name, key)
        self.read_only()


class Text(Field):
    view = "text-field"


class Textarea(Field):
    view = "textarea-field"

    def __init__(self, name: str, key: Optional[str] = None) -> None:
        super().__init__(name, key)
        self.hide_on_list()


class Email(Field):
    view = "email-field"
    type = "string"


class Password(Field):
    view = "password-field"
    type = "string"

    def __init__(self, name: str = "Password", key: Optional[str] = None) -> None:
        super().__init__(name, key)
        self.flags.update((HIDE_ON_LIST, HIDE_ON_DETAIL, HIDE_ON_API))
        self.resolve(lambda value, instance: None)


class Number(Field):
    view = "number-field"
    type = "number"


class Boolean(Field):
    view = "boolean-field"
    type = "boolean"


class Date(Field):
    view = "date-field"
    type = "string"


class DateTime(Field):
    view = "datetime-field"
    type = "string"


class Select(Field):
    view = "select-field"

    def options(self, options: Dict[Any, str]) -> Select:
        self.props["options"] = options
        return self


#
# Relations
#
class RelationField(Field):
    """
    :param resource: slug of the related resource, used for the nested serialization
    """

    def __init__(self, name: str, key: Optional[str] = None, resource: Optional[str] = None) -> None:
        super().__init__(name, key)
        self.related_resource = resource


class BelongsTo(RelationField):
    shape = RelationShape.SCALAR
    view = "link-field"
    type = "link"


class HasOne(RelationField):
    shape = RelationShape.DETAIL
    view = "detail-field"
    type = "detail"


class HasMany(RelationField):
    shape = RelationShape.COLLECTION
    view = "collection-field"
    type = "collection"

    def __init__(self, name: str, key: Optional[str] = None, resource: Optional[str] = None) -> None:
        super().__init__(name, key, resource)
        self.hide_on_list()


class BelongsToMany(RelationField):
    shape = RelationShape.CONNECT
    view = "connect-field"
    type = "connect"

    def __init__(self, name: str, key: Optional[str] = None, resource: Optional[str] = None) -> None:
        super().__init__(name, key, resource)
        self.hide_on_list()


class MorphTo(RelationField):
    """
    Polymorphic link: the owner row stores the related type and id

    :param types: maps the stored type value to the related model, e.g. {"posts": Post, "videos": Video}
    """

    shape = RelationShape.POLY_LINK
    view = "poly-link-field"
    type = "poly_link"

    def __init__(self, name: str, key: Optional[str] = None, types: Optional[Dict[str, type]] = None) -> None:
        super().__init__(name, key)
        self.types = dict(types or {})
        self.type_column = f"{self.key}_type"
        self.id_column = f"{self.key}_id"

    def using(self, type_column: str, id_column: str) -> MorphTo:
        self.type_column = type_column
        self.id_column = id_column
        return self

    def type_for_model(self, model) -> Optional[str]:
        for type_name, type_model in self.types.items():
            if type_model is model:
                return type_name
        return None


class MorphMany(RelationField):
    """
    Polymorphic collection: the related rows point back to the owner with
    <morph_name>_type and <morph_name>_id columns

    :param model: related model
    :param morph_name: name of the polymorphic link on the related model, e.g. "commentable"
    :param morph_type: type value stored for the owner, defaults to the owner resource slug
    """

    shape = RelationShape.POLY_COLLECTION
    view = "poly-collection-field"
    type = "poly_collection"

    def __init__(
        self,
        name: str,
        key: Optional[str] = None,
        model: Optional[type] = None,
        morph_name: Optional[str] = None,
        resource: Optional[str] = None,
        morph_type: Optional[str] = None,
    ) -> None:
        super().__init__(name, key, resource)
        self.hide_on_list()
        self.model = model
        self.morph_name = morph_name or self.key
        self.morph_type = morph_type

    @property
    def type_column(self) -> str:
        return f"{self.morph_name}_type"

    @property
    def id_column(self) -> str:
        return f"{self.morph_name}_id"
