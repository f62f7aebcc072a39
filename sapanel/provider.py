"""
Generic data provider

Executes index / show / create / update / delete for a registered resource,
driven by its ResourceMetadata:

    provider = DataProvider(metadata, registry=registry)
    result = provider.index(parse_query(request.query_string, metadata.slug, metadata.query_defaults()))
    record = provider.show(1)

Relations are eager loaded per shape (cfr. RELATION_LOADERS) and returned
in `Record.relations`, the serializer doesn't touch the store.

Store errors are never swallowed, they're wrapped with the operation context:
- IntegrityError => ConflictError
- OperationalError, DisconnectionError, pool TimeoutError => StoreUnavailableError
"""

from __future__ import annotations

import operator
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, and_, cast, func, inspect as sqla_inspect, or_, select
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import selectinload, with_parent
from werkzeug.security import generate_password_hash

import sapanel
from .attr_parse import parse_attr
from .config import get_int_config
from .context import Channel, OutputView, RequestContext
from .errors import ConflictError, NotFoundError, PanelError, StoreUnavailableError, SystemValidationError, ValidationError
from .fields import HIDE_ON_CREATE, HIDE_ON_UPDATE, RelationShape
from .metadata import BoundField, ResourceMetadata
from .operators import FilterOperator
from .query import LOGIC_OR, Filter, FilterGroup, Query, Sort
from .tx import atomic, compensating_delete

# lazy loading strategies that accept a selectinload() option
EAGER_LOADABLE = ("select", "joined", "subquery", "selectin", True)

_COMPARATORS = {
    FilterOperator.EQUAL: operator.eq,
    FilterOperator.NOT_EQUAL: operator.ne,
    FilterOperator.GREATER_THAN: operator.gt,
    FilterOperator.GREATER_EQ: operator.ge,
    FilterOperator.LESS_THAN: operator.lt,
    FilterOperator.LESS_EQ: operator.le,
}

# name of the DataProvider method that loads the relations of a shape
RELATION_LOADERS = {
    RelationShape.SCALAR: "load_mapped_relation",
    RelationShape.DETAIL: "load_mapped_relation",
    RelationShape.COLLECTION: "load_mapped_relation",
    RelationShape.CONNECT: "load_mapped_relation",
    RelationShape.POLY_LINK: "load_poly_link",
    RelationShape.POLY_COLLECTION: "load_poly_collection",
}

_missing_loaders = set(RelationShape) - set(RELATION_LOADERS)
if _missing_loaders:  # pragma: no cover
    raise TypeError(f"No relation loader for {_missing_loaders}")


@dataclass
class Record:
    """
    One stored record with its loaded relations (relation key => related instance(s))
    """

    instance: Any
    id: Any = None
    relations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PolyLink:
    """
    Resolved polymorphic link: the concrete type and the related instance
    """

    morph_type: str
    instance: Any


@dataclass(frozen=True)
class IndexResult:
    records: Tuple[Record, ...]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))

    @property
    def has_more(self) -> bool:
        return self.page < self.last_page


@dataclass
class Changes:
    """
    Validated incoming values

    :param columns: model attribute => value
    :param relations: connect relation key => related instances
    :param virtual: virtual field key => value, used by the dependent entity hooks
    """

    columns: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, List[Any]] = field(default_factory=dict)
    virtual: Dict[str, Any] = field(default_factory=dict)


def pk_attribute(model):
    """
    :return: the instrumented attribute of the (single column) primary key
    """
    mapper = sqla_inspect(model)
    return getattr(model, mapper.get_property_by_column(mapper.primary_key[0]).key)


def _is_blank(value) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and not value)


class DataProvider:
    """
    :param metadata: ResourceMetadata of the resource
    :param registry: used to look up the related resources (viaResource), optional
    :param session: SQLAlchemy session, sapanel.DB.session when None
    """

    # when False, the dependent writes of `create` run after the primary record was committed
    # and a failure is compensated by deleting the primary record
    supports_transactions = True

    def __init__(self, metadata: ResourceMetadata, registry=None, session=None) -> None:
        self.metadata = metadata
        self.registry = registry
        self._session = session

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.metadata.slug}>"

    @property
    def session(self):
        if self._session is not None:
            return self._session
        return sapanel.DB.session

    @property
    def model(self):
        return self.metadata.model

    @property
    def slug(self) -> str:
        return self.metadata.slug

    #
    # Operations
    #
    def index(self, query: Optional[Query] = None, ctx: Optional[RequestContext] = None) -> IndexResult:
        """
        Filter, search, count, sort, paginate and eager load

        :param query: parsed query, the resource defaults when None
        :return: IndexResult, `total` is the size of the filtered set
        """
        if query is None:
            defaults = self.metadata.query_defaults()
            query = Query(sorts=defaults.sorts, per_page=defaults.per_page)

        channel = ctx.channel if ctx is not None else Channel.INTERNAL
        criteria = self.compile_filters(query.filters, channel)
        search = self.search_criteria(query.search, channel)
        if search is not None:
            criteria.append(search)
        via = self.via_criteria(query, ctx)
        if via is not None:
            criteria.append(via)

        stmt = select(self.model)
        if criteria:
            stmt = stmt.where(*criteria)

        self._check(ctx, "index")
        with self._store_call("index"):
            total = self.count(stmt)

        relations = self.metadata.relations_for(query)
        stmt = stmt.order_by(*self.order_by(query.sorts or self.metadata.default_sorts, channel))
        stmt = stmt.offset(query.offset).limit(query.per_page)
        stmt = self.eager_options(stmt, relations)

        self._check(ctx, "index")
        with self._store_call("index"):
            instances = self.session.scalars(stmt).all()
            records = self.load_records(instances, relations, ctx)
        return IndexResult(records=tuple(records), total=total, page=query.page, per_page=query.per_page)

    def show(self, record_id, ctx: Optional[RequestContext] = None, query: Optional[Query] = None) -> Record:
        """
        :return: the record with its relations loaded
        :raises NotFoundError: when there's no record with `record_id`
        """
        pk_value = self.metadata.coerce_id(record_id)
        relations = self.metadata.relations_for(query)
        stmt = select(self.model).where(pk_attribute(self.model) == pk_value)
        stmt = self.eager_options(stmt, relations)

        self._check(ctx, "show", record_id)
        with self._store_call("show", record_id):
            instance = self.session.scalars(stmt).first()
            if instance is None:
                raise NotFoundError(f"{self.slug} {record_id}").with_context(resource=self.slug, record_id=record_id, operation="show")
            return self.load_records([instance], relations, ctx)[0]

    def create(self, values: Dict[str, Any], ctx: Optional[RequestContext] = None) -> Record:
        """
        Create the primary record and its dependent records as one logical unit

        :param values: field key => value
        :return: the created record
        """
        changes = self.validate(values, OutputView.CREATE)

        self._check(ctx, "create")
        if self.supports_transactions:
            with self._store_call("create"):
                with atomic(self.session):
                    instance = self.insert(changes)
                    record_id = getattr(instance, self.metadata.primary_key)
                    self.create_dependents(instance, changes)
            return self.show(record_id, ctx)

        with self._store_call("create"):
            with atomic(self.session):
                instance = self.insert(changes)
                record_id = getattr(instance, self.metadata.primary_key)
        try:
            self._check(ctx, "create", record_id)
            with self._store_call("create", record_id):
                with atomic(self.session):
                    self.create_dependents(instance, changes)
        except Exception:
            # the primary record is removed before the original error is reported
            compensating_delete(self.session, self.model, record_id, resource=self.slug)
            raise
        return self.show(record_id, ctx)

    def update(self, record_id, values: Dict[str, Any], ctx: Optional[RequestContext] = None) -> Record:
        """
        Full replace: every writable stored field takes the supplied value,
        missing fields are reset to the column default (or null)

        :return: the updated record
        """
        pk_value = self.metadata.coerce_id(record_id)
        self._check(ctx, "update", record_id)
        with self._store_call("update", record_id):
            instance = self.session.get(self.model, pk_value)
        if instance is None:
            raise NotFoundError(f"{self.slug} {record_id}").with_context(resource=self.slug, record_id=record_id, operation="update")

        changes = self.validate(values, OutputView.UPDATE)

        self._check(ctx, "update", record_id)
        with self._store_call("update", record_id):
            with atomic(self.session):
                for attr_name, value in changes.columns.items():
                    setattr(instance, attr_name, value)
                for rel_name, related in changes.relations.items():
                    setattr(instance, rel_name, related)
                self.session.flush()
                self.update_dependents(instance, changes)
        return self.show(pk_value, ctx)

    def delete(self, record_id, ctx: Optional[RequestContext] = None) -> None:
        """
        Delete the record and its dependents, deleting a missing record is a no-op
        """
        pk_value = self.metadata.coerce_id(record_id)
        self._check(ctx, "delete", record_id)
        with self._store_call("delete", record_id):
            instance = self.session.get(self.model, pk_value)
            if instance is None:
                sapanel.log.debug(f"delete: {self.slug} {record_id} doesn't exist")
                return
            with atomic(self.session):
                self.delete_dependents(instance)
                self.session.delete(instance)

    #
    # Hooks for resources with dependent entities
    #
    def insert(self, changes: Changes):
        instance = self.model()
        for attr_name, value in changes.columns.items():
            setattr(instance, attr_name, value)
        for rel_name, related in changes.relations.items():
            setattr(instance, rel_name, related)
        self.session.add(instance)
        self.session.flush()
        return instance

    def create_dependents(self, instance, changes: Changes) -> None:
        """
        Write the records that depend on the newly created `instance`
        """

    def update_dependents(self, instance, changes: Changes) -> None:
        pass

    def delete_dependents(self, instance) -> None:
        pass

    def extra_validation(self, values: Dict[str, Any], view: OutputView, errors: Dict[str, List[str]]) -> None:
        """
        Add resource specific validation messages to `errors`
        """

    #
    # Validation
    #
    def validate(self, values: Dict[str, Any], view: OutputView) -> Changes:
        """
        Validate and convert the incoming values, nothing is written here

        :param view: OutputView.CREATE or OutputView.UPDATE
        :raises ValidationError: with the field keyed error messages
        """
        if not isinstance(values, dict):
            raise ValidationError("Invalid payload, expected an object").with_context(resource=self.slug, operation=view.value)

        hidden_flag = HIDE_ON_CREATE if view == OutputView.CREATE else HIDE_ON_UPDATE
        errors = defaultdict(list)
        changes = Changes()
        for bound_field in self.metadata.fields:
            fld = bound_field.field
            if fld.is_read_only or hidden_flag in fld.flags:
                continue
            value = values.get(fld.key)
            if _is_blank(value) and self._is_required(bound_field):
                errors[fld.key].append("is required")
                continue
            try:
                self._validate_field(bound_field, value, fld.key in values, changes)
            except ValidationError as exc:
                for msgs in exc.errors.values():
                    errors[fld.key].extend(msgs)
                if not exc.errors:
                    errors[fld.key].append(exc.reason)

        unknown = set(values) - set(self.metadata.by_key)
        if unknown:
            sapanel.log.debug(f"{self.slug}: ignoring unknown fields {sorted(unknown)}")

        self.extra_validation(values, view, errors)
        if errors:
            raise ValidationError(errors=dict(errors)).with_context(resource=self.slug, operation=view.value)
        return changes

    @staticmethod
    def _is_required(bound_field: BoundField) -> bool:
        if bound_field.field.is_required:
            return True
        column = bound_field.column
        if column is None or not bound_field.is_stored or column.primary_key:
            return False
        return not column.nullable and column.default is None and column.server_default is None

    def _validate_field(self, bound_field: BoundField, value, present: bool, changes: Changes) -> None:
        fld = bound_field.field
        shape = bound_field.shape
        if shape is None:
            if bound_field.is_stored:
                value = fld.store(value) if value is not None else value
                changes.columns[bound_field.column.key] = parse_attr(bound_field.column, value)
            elif present:
                changes.virtual[fld.key] = fld.store(value)
            return

        if shape == RelationShape.SCALAR:
            fk_column = self.metadata.columns[bound_field.foreign_key]
            if isinstance(value, dict):
                value = value.get("id")
            changes.columns[bound_field.foreign_key] = parse_attr(fk_column, value)
        elif shape == RelationShape.CONNECT:
            if value is None:
                value = []
            if not isinstance(value, (list, tuple)):
                raise ValidationError(errors={fld.key: ["expected a list of ids"]})
            changes.relations[fld.key] = self.resolve_related(bound_field, value)
        elif shape == RelationShape.POLY_LINK:
            if value is None:
                changes.columns[fld.type_column] = None
                changes.columns[fld.id_column] = None
                return
            if not isinstance(value, dict) or value.get("type") not in fld.types:
                raise ValidationError(errors={fld.key: [f"expected {{'type': <{'|'.join(fld.types)}>, 'id': <id>}}"]})
            changes.columns[fld.type_column] = value["type"]
            changes.columns[fld.id_column] = parse_attr(self.metadata.columns[fld.id_column], value.get("id"))
        elif present:
            # detail, collection and poly collection relations are written through the related resource
            sapanel.log.debug(f"{self.slug}: {shape.value} relation {fld.key} is not writable here")

    def resolve_related(self, bound_field: BoundField, ids) -> List[Any]:
        """
        :return: the related instances with the given `ids`
        :raises ValidationError: when an id doesn't exist
        """
        related_model = bound_field.related_model
        pk_attr = pk_attribute(related_model)
        pk_column = sqla_inspect(related_model).primary_key[0]
        wanted = [parse_attr(pk_column, rel_id) for rel_id in ids]
        if not wanted:
            return []
        with self._store_call("validate"):
            found = {getattr(inst, pk_attr.key): inst for inst in self.session.scalars(select(related_model).where(pk_attr.in_(wanted)))}
        missing = [rel_id for rel_id in wanted if rel_id not in found]
        if missing:
            raise ValidationError(errors={bound_field.key: [f"unknown ids {missing}"]})
        return [found[rel_id] for rel_id in wanted]

    #
    # Query building
    #
    def filter_attribute(self, name: str, channel: Channel = Channel.INTERNAL):
        """
        Only declared fields are filtered or sorted on, fields hidden on `channel` are treated as unknown

        :return: model attribute used to filter or sort on `name`, None if there's none
        """
        bound_field = self.metadata.field(name)
        if bound_field is None or bound_field.field.hidden_on_channel(channel):
            return None
        if bound_field.shape == RelationShape.SCALAR:
            return getattr(self.model, bound_field.foreign_key)
        if bound_field.is_stored:
            return getattr(self.model, bound_field.key)
        return None

    def compile_filters(self, groups: Tuple[FilterGroup, ...], channel: Channel = Channel.INTERNAL) -> list:
        """
        Groups are combined with AND, the filters of a group with the group logic

        :raises ValidationError: for unknown fields or values that don't match the operator
        """
        criteria = []
        errors = defaultdict(list)
        for group in groups:
            expressions = []
            for flt in group.filters:
                try:
                    expressions.append(self.compile_filter(flt, channel))
                except ValidationError as exc:
                    for msgs in exc.errors.values():
                        errors[flt.field].extend(msgs)
            if not expressions:
                continue
            if group.logic == LOGIC_OR:
                criteria.append(or_(*expressions))
            else:
                criteria.append(and_(*expressions))
        if errors:
            raise ValidationError(errors=dict(errors)).with_context(resource=self.slug, operation="index")
        return criteria

    def compile_filter(self, flt: Filter, channel: Channel = Channel.INTERNAL):
        """
        :return: SQLAlchemy expression for `flt`
        :raises ValidationError: keyed by the filter field
        """
        attr = self.filter_attribute(flt.field, channel)
        if attr is None:
            raise ValidationError(errors={flt.field: ["unknown filter field"]})
        column = attr.property.columns[0]
        op = flt.operator
        value = flt.value

        if op == FilterOperator.IS_NULL:
            return attr.is_(None)
        if op == FilterOperator.IS_NOT_NULL:
            return attr.is_not(None)
        if op in (FilterOperator.IN, FilterOperator.NOT_IN):
            if not isinstance(value, (list, tuple)) or not value:
                raise ValidationError(errors={flt.field: [f"{op.value} expects a list of values"]})
            values = [self._filter_value(column, val) for val in value]
            return attr.in_(values) if op == FilterOperator.IN else attr.not_in(values)
        if op == FilterOperator.BETWEEN:
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise ValidationError(errors={flt.field: ["between expects exactly two values"]})
            return attr.between(self._filter_value(column, value[0]), self._filter_value(column, value[1]))
        if isinstance(value, (list, tuple, dict)):
            raise ValidationError(errors={flt.field: [f"{op.value} expects a single value"]})
        if op in (FilterOperator.LIKE, FilterOperator.NOT_LIKE):
            pattern = str(value) if "%" in str(value) else f"%{value}%"
            text = cast(attr, String)
            return text.ilike(pattern) if op == FilterOperator.LIKE else text.not_ilike(pattern)
        if value is None:
            return attr.is_(None) if op == FilterOperator.EQUAL else attr.is_not(None)
        return _COMPARATORS[op](attr, self._filter_value(column, value))

    @staticmethod
    def _filter_value(column, value):
        if value is None:
            return None
        return parse_attr(column, value)

    def search_criteria(self, search: str, channel: Channel = Channel.INTERNAL):
        """
        :return: OR of the case insensitive matches of `search` in the search columns,
                 the external channel only searches the fields it can see
        """
        col_names = self.metadata.search_columns
        if channel == Channel.EXTERNAL:
            col_names = [col_name for col_name in col_names if self.filter_attribute(col_name, channel) is not None]
        if not search or not col_names:
            return None
        pattern = f"%{search}%"
        return or_(*[cast(getattr(self.model, col_name), String).ilike(pattern) for col_name in col_names])

    def via_criteria(self, query: Query, ctx: Optional[RequestContext] = None):
        """
        Restrict the index to the records related to viaResource/viaResourceId through viaRelationship
        """
        if not query.via_resource or query.via_resource_id is None or not query.via_relationship:
            return None
        parent = self.registry.get(query.via_resource) if self.registry is not None else None
        if parent is None:
            raise ValidationError(errors={"viaResource": [f"unknown resource {query.via_resource}"]})
        bound_field = parent.field(query.via_relationship)
        if bound_field is None or not bound_field.is_relation or bound_field.shape == RelationShape.POLY_LINK:
            raise ValidationError(errors={"viaRelationship": [f"invalid relation {query.via_relationship}"]})
        if bound_field.related_model is not self.model:
            raise ValidationError(errors={"viaRelationship": [f"{query.via_relationship} doesn't relate to {self.slug}"]})
        parent_id = parent.coerce_id(query.via_resource_id)

        if bound_field.shape == RelationShape.POLY_COLLECTION:
            fld = bound_field.field
            morph_type = fld.morph_type or parent.morph_type
            return and_(getattr(self.model, fld.type_column) == morph_type, getattr(self.model, fld.id_column) == parent_id)

        self._check(ctx, "index")
        with self._store_call("index", parent_id):
            parent_instance = self.session.get(parent.model, parent_id)
        if parent_instance is None:
            raise NotFoundError(f"{parent.slug} {parent_id}").with_context(resource=parent.slug, record_id=parent_id, operation="index")
        return with_parent(parent_instance, getattr(parent.model, bound_field.key))

    def count(self, stmt) -> int:
        max_table_count = get_int_config("MAX_TABLE_COUNT", 10**7)
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        count = self.session.scalar(count_stmt) or 0
        if count > max_table_count:
            sapanel.log.warning(f"Large table count detected ({count}>{max_table_count}) for {self.slug}, performance may be impacted")
        return count

    def order_by(self, sorts: Tuple[Sort, ...], channel: Channel = Channel.INTERNAL) -> list:
        """
        Unknown sort columns are skipped, the primary key is the final tie breaker.
        The resource default sorts may use any column.
        """
        clauses = []
        sorted_attrs = set()
        for sort in sorts:
            if sort in self.metadata.default_sorts:
                attr = getattr(self.model, sort.column)
            else:
                attr = self.filter_attribute(sort.column, channel)
            if attr is None:
                sapanel.log.warning(f"{self.slug}: skipping sort on unknown column {sort.column}")
                continue
            clauses.append(attr.desc() if sort.descending else attr.asc())
            sorted_attrs.add(attr.key)
        pk_attr = pk_attribute(self.model)
        if pk_attr.key not in sorted_attrs:
            clauses.append(pk_attr.asc())
        return clauses

    #
    # Relation loading
    #
    def eager_options(self, stmt, relations):
        for rel_name in sorted(relations):
            bound_field = self.metadata.by_key[rel_name]
            if bound_field.relationship is None:
                continue
            if bound_field.relationship.lazy not in EAGER_LOADABLE:
                # we can't set options for lazy_load 'dynamic'/'raise'/'noload' relationships
                continue
            stmt = stmt.options(selectinload(getattr(self.model, rel_name)))
        return stmt

    def load_records(self, instances, relations, ctx: Optional[RequestContext] = None) -> List[Record]:
        records = [Record(instance=instance, id=getattr(instance, self.metadata.primary_key)) for instance in instances]
        if not records:
            return records
        for rel_name in sorted(relations):
            bound_field = self.metadata.by_key[rel_name]
            self._check(ctx, "load relations")
            loader = getattr(self, RELATION_LOADERS[bound_field.shape])
            loader(records, bound_field)
        return records

    def load_mapped_relation(self, records: List[Record], bound_field: BoundField) -> None:
        for record in records:
            value = getattr(record.instance, bound_field.key)
            if bound_field.relationship.uselist:
                value = list(value)
            record.relations[bound_field.key] = value

    def load_poly_link(self, records: List[Record], bound_field: BoundField) -> None:
        """
        Group the records by their type column and query every concrete model once
        """
        fld = bound_field.field
        wanted = defaultdict(set)
        for record in records:
            morph_type = getattr(record.instance, fld.type_column)
            related_id = getattr(record.instance, fld.id_column)
            if morph_type is not None and related_id is not None:
                wanted[morph_type].add(related_id)

        loaded = {}
        for morph_type, ids in wanted.items():
            related_model = fld.types.get(morph_type)
            if related_model is None:
                sapanel.log.warning(f"{self.slug}.{fld.key}: unknown type {morph_type}")
                continue
            pk_attr = pk_attribute(related_model)
            for instance in self.session.scalars(select(related_model).where(pk_attr.in_(ids))):
                loaded[(morph_type, getattr(instance, pk_attr.key))] = instance

        for record in records:
            key = (getattr(record.instance, fld.type_column), getattr(record.instance, fld.id_column))
            instance = loaded.get(key)
            record.relations[fld.key] = PolyLink(key[0], instance) if instance is not None else None

    def load_poly_collection(self, records: List[Record], bound_field: BoundField) -> None:
        fld = bound_field.field
        related_model = bound_field.related_model
        morph_type = fld.morph_type or self.metadata.morph_type
        owner_ids = [record.id for record in records]
        stmt = (
            select(related_model)
            .where(getattr(related_model, fld.type_column) == morph_type, getattr(related_model, fld.id_column).in_(owner_ids))
            .order_by(pk_attribute(related_model))
        )
        grouped = defaultdict(list)
        for instance in self.session.scalars(stmt):
            grouped[getattr(instance, fld.id_column)].append(instance)
        for record in records:
            record.relations[fld.key] = grouped.get(record.id, [])

    #
    # Error handling
    #
    def _check(self, ctx: Optional[RequestContext], operation: str, record_id=None) -> None:
        if ctx is not None:
            try:
                ctx.check(operation, self.slug)
            except StoreUnavailableError as exc:
                raise exc.with_context(record_id=record_id)

    @contextmanager
    def _store_call(self, operation: str, record_id=None):
        """
        Wrap the store errors with the operation context
        """
        try:
            yield
        except PanelError as exc:
            if exc.resource is None:
                exc.with_context(resource=self.slug, record_id=record_id, operation=operation)
            raise
        except IntegrityError as exc:
            raise ConflictError(f"{operation} {self.slug}: {exc.orig}").with_context(
                resource=self.slug, record_id=record_id, operation=operation
            ) from exc
        except (OperationalError, DisconnectionError, PoolTimeoutError) as exc:
            raise StoreUnavailableError(f"{operation} {self.slug}: {exc}").with_context(
                resource=self.slug, record_id=record_id, operation=operation
            ) from exc


class CredentialedDataProvider(DataProvider):
    """
    Data provider for principals that own a credential record, e.g. a user and the account holding its password:

        class UserProvider(CredentialedDataProvider):
            credential_model = Account
            owner_key = "user_id"
            credential_defaults = {"provider": "credential"}

    The principal and its credential are created in one transaction.
    The secret is hashed with werkzeug and never stored on the principal,
    the resource must declare it as a non stored field (e.g. Password("Password")).
    """

    credential_model = None
    owner_key = "user_id"
    secret_field = "password"
    hash_column = "password_hash"
    credential_defaults: Dict[str, Any] = {}

    def __init__(self, metadata: ResourceMetadata, registry=None, session=None) -> None:
        super().__init__(metadata, registry=registry, session=session)
        if self.credential_model is None:
            raise SystemValidationError(f"{self.__class__.__name__} doesn't declare a credential_model")
        secret = metadata.field(self.secret_field)
        if secret is None or secret.is_stored:
            raise SystemValidationError(f"{metadata.slug}: {self.secret_field} must be declared as a non stored field")

    def hash_secret(self, secret: str) -> str:
        return generate_password_hash(secret)

    def extra_validation(self, values, view, errors) -> None:
        if view == OutputView.CREATE and _is_blank(values.get(self.secret_field)) and self.secret_field not in errors:
            errors[self.secret_field].append("is required")

    def credential_values(self, instance, secret: str) -> Dict[str, Any]:
        """
        :return: column values of the credential record of `instance`
        """
        result = dict(self.credential_defaults)
        result[self.owner_key] = getattr(instance, self.metadata.primary_key)
        result[self.hash_column] = self.hash_secret(secret)
        return result

    def credentials_of(self, instance) -> List[Any]:
        owner_attr = getattr(self.credential_model, self.owner_key)
        return list(self.session.scalars(select(self.credential_model).where(owner_attr == getattr(instance, self.metadata.primary_key))))

    def create_dependents(self, instance, changes: Changes) -> None:
        credential = self.credential_model(**self.credential_values(instance, changes.virtual[self.secret_field]))
        self.session.add(credential)
        self.session.flush()

    def update_dependents(self, instance, changes: Changes) -> None:
        secret = changes.virtual.get(self.secret_field)
        if _is_blank(secret):
            return
        credentials = self.credentials_of(instance)
        if not credentials:
            self.create_dependents(instance, changes)
            return
        for credential in credentials:
            setattr(credential, self.hash_column, self.hash_secret(secret))
        self.session.flush()

    def delete_dependents(self, instance) -> None:
        for credential in self.credentials_of(instance):
            self.session.delete(credential)
        self.session.flush()
