"""
Typed field registry of a resource

ResourceMetadata.build() reads the resource declaration and the SQLAlchemy mapper once,
when the resource is registered. Every declared field is bound to its mapped column or relationship,
a field that doesn't map to anything raises a SystemValidationError instead of being skipped silently.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import MANYTOMANY, MANYTOONE, ONETOMANY

import sapanel
from .errors import SystemValidationError, ValidationError
from .fields import Field, RelationShape
from .query import Query, QueryDefaults, Sort
from .query_parser import sorts_from_pairs
from .resource import Policy, Resource

#
# Map SQLA types to json types
# If a type isn't found in the table, "string" will be used
#
SQLALCHEMY_JSON_TYPE = {
    "INTEGER": "integer",
    "SMALLINT": "integer",
    "BIGINT": "integer",
    "TINYINT": "integer",
    "MEDIUMINT": "integer",
    "YEAR": "integer",
    "NUMERIC": "number",
    "DECIMAL": "number",
    "FLOAT": "number",
    "REAL": "number",
    "BOOLEAN": "boolean",
    "VARCHAR": "string",
    "NVARCHAR": "string",
    "CHAR": "string",
    "TEXT": "string",
    "TINYTEXT": "string",
    "MEDIUMTEXT": "string",
    "LONGTEXT": "string",
    "DATE": "string",
    "DATETIME": "string",
    "TIMESTAMP": "string",
    "TIME": "string",
    "INTERVAL": "string",
    "ENUM": "string",
    "UUID": "string",
    "JSON": "object",
}


def column_json_type(column) -> str:
    """
    :param column: SQLAlchemy column
    :return: json type of the column
    """
    # Take care of extended column type declarations, eg. TEXT COLLATE "utf8mb4_unicode_ci" > TEXT
    try:
        column_type = str(column.type)
    except Exception as exc:  # pragma: no cover
        # custom types that can't be compiled by the default dialect
        sapanel.log.debug(f"Can't compile {column.type!r}: {exc}")
        return "string"
    column_type = column_type.split("(")[0].split(" ")[0]
    json_type = SQLALCHEMY_JSON_TYPE.get(column_type)
    if json_type is None:
        sapanel.log.debug(f'Could not match json datatype for db column type `{column_type}`, using "string" for {column}')
        json_type = "string"
    return json_type


@dataclass(frozen=True, eq=False)
class BoundField:
    """
    A field definition bound to the model

    :param column: mapped column (plain fields, poly-link type column)
    :param relationship: mapped relationship (scalar, detail, collection and connect relations)
    :param foreign_key: attribute written when a scalar relation is set by id
    :param related_model: model of the related records (None for poly-link relations)
    """

    field: Field
    wire_type: str
    column: Any = None
    relationship: Any = None
    foreign_key: Optional[str] = None
    related_model: Any = None

    @property
    def key(self) -> str:
        return self.field.key

    @property
    def shape(self) -> Optional[RelationShape]:
        return self.field.shape

    @property
    def is_relation(self) -> bool:
        return self.field.is_relation

    @property
    def is_stored(self) -> bool:
        """
        :return: True if the value is written to a mapped column
        """
        return self.column is not None and not self.is_relation and not self.field.is_virtual

    @property
    def is_writable(self) -> bool:
        return not self.field.is_read_only


_SHAPE_DIRECTIONS = {
    RelationShape.SCALAR: (MANYTOONE,),
    RelationShape.DETAIL: (ONETOMANY, MANYTOONE),
    RelationShape.COLLECTION: (ONETOMANY,),
    RelationShape.CONNECT: (MANYTOMANY,),
}


@dataclass(frozen=True, eq=False)
class ResourceMetadata:
    slug: str
    title: str
    model: Any
    resource: Resource
    fields: Tuple[BoundField, ...]
    by_key: Mapping[str, BoundField]
    columns: Mapping[str, Any]
    primary_key: str
    default_relations: FrozenSet[str] = frozenset()
    default_sorts: Tuple[Sort, ...] = ()
    search_columns: Tuple[str, ...] = ()
    per_page: Optional[int] = None
    internal: bool = False
    provider_class: Any = None
    policy: Policy = dc_field(default_factory=Policy)

    def __repr__(self):
        return f"<ResourceMetadata {self.slug}>"

    @classmethod
    def build(cls, resource: Resource, internal: Optional[bool] = None) -> ResourceMetadata:
        """
        :param resource: resource declaration (instance or Resource subclass)
        :param internal: overrides `resource.internal`
        :return: metadata
        :raises SystemValidationError: when the declaration doesn't match the model
        """
        if isinstance(resource, type):
            resource = resource()
        model = resource.get_model()
        if model is None:
            raise SystemValidationError(f"{resource.__class__.__name__} doesn't declare a model")
        try:
            mapper = sqla_inspect(model)
        except NoInspectionAvailable as exc:
            raise SystemValidationError(f"{model!r} is not a mapped SQLAlchemy model") from exc

        slug = resource.get_slug()
        columns = {attr.key: attr.columns[0] for attr in mapper.column_attrs}
        relationships = {rel.key: rel for rel in mapper.relationships}
        if len(mapper.primary_key) != 1:
            raise SystemValidationError(f"{slug}: only models with a single primary key column are supported")
        primary_key = mapper.get_property_by_column(mapper.primary_key[0]).key

        bound = []
        seen = set()
        for field in resource.fields():
            if field.key in seen:
                raise SystemValidationError(f"{slug}: duplicate field {field.key}")
            seen.add(field.key)
            bound.append(_bind_field(slug, mapper, field, columns, relationships))
        bound = tuple(bound)
        by_key = {bound_field.key: bound_field for bound_field in bound}

        default_relations = set()
        for rel_name in resource.relations():
            bound_field = by_key.get(rel_name)
            if bound_field is None or not bound_field.is_relation:
                raise SystemValidationError(f"{slug}: eager loaded relation {rel_name} is not a relation field")
            default_relations.add(rel_name)

        default_sorts = sorts_from_pairs(resource.default_sort)
        for sort in default_sorts:
            if sort.column not in columns:
                raise SystemValidationError(f"{slug}: default sort column {sort.column} is not a column")
        if not default_sorts:
            default_sorts = (Sort(primary_key),)

        search_columns = [bf.key for bf in bound if bf.field.is_searchable and bf.is_stored]
        for col_name in resource.search_columns:
            if col_name not in columns:
                raise SystemValidationError(f"{slug}: search column {col_name} is not a column")
            if col_name not in search_columns:
                search_columns.append(col_name)

        if internal is None:
            internal = bool(resource.internal)

        result = cls(
            slug=slug,
            title=resource.get_title(),
            model=model,
            resource=resource,
            fields=bound,
            by_key=MappingProxyType(by_key),
            columns=MappingProxyType(columns),
            primary_key=primary_key,
            default_relations=frozenset(default_relations),
            default_sorts=tuple(default_sorts),
            search_columns=tuple(search_columns),
            per_page=resource.per_page,
            internal=internal,
            provider_class=resource.provider_class,
            policy=resource.get_policy(),
        )
        sapanel.log.debug(f"Built metadata for {slug}: {[bf.key for bf in bound]}")
        return result

    def field(self, key: str) -> Optional[BoundField]:
        return self.by_key.get(key)

    @property
    def relation_fields(self) -> Tuple[BoundField, ...]:
        return tuple(bf for bf in self.fields if bf.is_relation)

    @property
    def value_fields(self) -> Tuple[BoundField, ...]:
        return tuple(bf for bf in self.fields if not bf.is_relation)

    @property
    def pk_column(self):
        return self.columns[self.primary_key]

    @property
    def morph_type(self) -> str:
        """
        :return: value stored in the type column of polymorphic relations pointing to this resource
        """
        return self.slug

    def query_defaults(self) -> QueryDefaults:
        return QueryDefaults.from_config(sorts=self.default_sorts, per_page=self.per_page)

    def relations_for(self, query: Optional[Query] = None) -> FrozenSet[str]:
        """
        :return: the relations to be eager loaded: the declared ones plus those requested by the client
        """
        result = set(self.default_relations)
        if query is None:
            return frozenset(result)
        for rel_name in query.requested_relations:
            bound_field = self.by_key.get(rel_name)
            if bound_field is None or not bound_field.is_relation:
                sapanel.log.debug(f"{self.slug}: skipping unknown relation {rel_name}")
                continue
            result.add(rel_name)
        return frozenset(result)

    def coerce_id(self, record_id):
        """
        :return: `record_id` converted to the primary key python type
        :raises ValidationError: when the conversion fails
        """
        try:
            python_type = self.pk_column.type.python_type
        except NotImplementedError:
            return record_id
        if isinstance(record_id, python_type):
            return record_id
        try:
            return python_type(record_id)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid id {record_id!r}") from exc


def _bind_field(slug, mapper, field, columns, relationships) -> BoundField:
    """
    Bind `field` to the mapped column or relationship
    """
    if field.shape is None:
        column = columns.get(field.key)
        if column is not None:
            wire_type = field.type or column_json_type(column)
            return BoundField(field=field, wire_type=wire_type, column=column)
        if field.is_virtual or field.resolve_callback is not None:
            return BoundField(field=field, wire_type=field.type or "string")
        raise SystemValidationError(f"{slug}: field {field.key} is not a column of {mapper.class_.__name__}, declare it virtual()")

    if field.shape == RelationShape.POLY_LINK:
        for col_name in (field.type_column, field.id_column):
            if col_name not in columns:
                raise SystemValidationError(f"{slug}: poly link {field.key} requires a {col_name} column")
        if not field.types:
            raise SystemValidationError(f"{slug}: poly link {field.key} declares no types")
        return BoundField(field=field, wire_type=field.type, column=columns[field.type_column])

    if field.shape == RelationShape.POLY_COLLECTION:
        if field.model is None:
            raise SystemValidationError(f"{slug}: poly collection {field.key} declares no model")
        related_columns = {attr.key for attr in sqla_inspect(field.model).column_attrs}
        for col_name in (field.type_column, field.id_column):
            if col_name not in related_columns:
                raise SystemValidationError(f"{slug}: {field.model.__name__} requires a {col_name} column for {field.key}")
        return BoundField(field=field, wire_type=field.type, related_model=field.model)

    relationship = relationships.get(field.key)
    if relationship is None:
        raise SystemValidationError(f"{slug}: relation {field.key} is not a relationship of {mapper.class_.__name__}")
    if relationship.direction not in _SHAPE_DIRECTIONS[field.shape]:
        raise SystemValidationError(f"{slug}: relationship {field.key} ({relationship.direction.name}) can't be a {field.shape.value} relation")
    if field.shape == RelationShape.DETAIL and relationship.uselist:
        raise SystemValidationError(f"{slug}: detail relation {field.key} must be declared with uselist=False")

    foreign_key = None
    if field.shape == RelationShape.SCALAR:
        local_column = list(relationship.local_columns)[0]
        foreign_key = mapper.get_property_by_column(local_column).key
    return BoundField(
        field=field,
        wire_type=field.type,
        relationship=relationship,
        foreign_key=foreign_key,
        related_model=relationship.mapper.class_,
    )
