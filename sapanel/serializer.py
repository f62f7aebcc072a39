"""
Field serialization

serialize() converts a provider Record into a wire record: an ordered mapping of the field keys
to field views, e.g.

    {
        "name": {"key": "name", "name": "Name", "view": "text-field", "type": "string", "data": "Jane Doe", "context": ""},
        "profile": {"key": "profile", "name": "Profile", "view": "detail-field", "type": "detail", "data": {...}, "context": ""},
    }

Fields hidden for the output context are left out. flatten() collapses the field views
to their data for clients that want plain objects (the external api channel).

The serializer doesn't query the store: relations that weren't loaded by the provider have null data.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import inspect as sqla_inspect

import sapanel
from .context import EXTERNAL_DETAIL, INTERNAL_DETAIL, INTERNAL_INDEX, OutputContext
from .fields import RelationShape, hidden_flags_for
from .metadata import BoundField, ResourceMetadata, column_json_type
from .provider import PolyLink, Record


class WireRecord(dict):
    """
    Field key => field view, created by `serialize`
    """


def serialize(record: Record, metadata: ResourceMetadata, context: OutputContext = INTERNAL_DETAIL, registry=None) -> WireRecord:
    """
    :param record: provider record, relations already loaded
    :param metadata: metadata of the record resource
    :param context: output context, decides which fields are hidden
    :param registry: used to serialize the related records with their resource fields
    :return: wire record
    """
    result = WireRecord()
    for bound_field in metadata.fields:
        if bound_field.field.hidden_for(context):
            continue
        result[bound_field.key] = field_view(bound_field, record, context, registry)
    return result


def serialize_many(records: Iterable[Record], metadata: ResourceMetadata, context: OutputContext = INTERNAL_INDEX, registry=None) -> List[WireRecord]:
    return [serialize(record, metadata, context, registry) for record in records]


def field_view(bound_field: BoundField, record: Record, context: OutputContext, registry=None) -> Dict[str, Any]:
    fld = bound_field.field
    view = {
        "key": fld.key,
        "name": fld.name,
        "view": fld.view,
        "type": bound_field.wire_type,
        "data": None,
        "context": fld.context,
    }
    if fld.props:
        view["props"] = dict(fld.props)

    if not bound_field.is_relation:
        value = getattr(record.instance, fld.key, None)
        view["data"] = fld.resolve_value(value, record.instance)
        return view

    if fld.key not in record.relations:
        # not eager loaded
        return view
    serializer = SHAPE_SERIALIZERS[bound_field.shape]
    data = serializer(bound_field, record.relations[fld.key], view, context, registry)
    view["data"] = fld.resolve_value(data, record.instance)
    return view


#
# Relation serializers, one per RelationShape
#
def _serialize_one(bound_field, value, view, context, registry):
    if value is None:
        return None
    related = _related_metadata(registry, bound_field.field.related_resource, bound_field.related_model)
    return serialize_nested(value, related, context)


def _serialize_collection(bound_field, value, view, context, registry):
    if value is None:
        return None
    related = _related_metadata(registry, bound_field.field.related_resource, bound_field.related_model)
    return [serialize_nested(instance, related, context) for instance in value]


def _serialize_poly_link(bound_field, value, view, context, registry):
    if not isinstance(value, PolyLink) or value.instance is None:
        view["morph_type"] = None
        return None
    view["morph_type"] = value.morph_type
    related = _related_metadata(registry, value.morph_type, type(value.instance))
    return serialize_nested(value.instance, related, context)


SHAPE_SERIALIZERS = {
    RelationShape.SCALAR: _serialize_one,
    RelationShape.DETAIL: _serialize_one,
    RelationShape.COLLECTION: _serialize_collection,
    RelationShape.CONNECT: _serialize_collection,
    RelationShape.POLY_LINK: _serialize_poly_link,
    RelationShape.POLY_COLLECTION: _serialize_collection,
}

_missing_serializers = set(RelationShape) - set(SHAPE_SERIALIZERS)
if _missing_serializers:  # pragma: no cover
    raise TypeError(f"No serializer for {_missing_serializers}")


def _related_metadata(registry, slug: Optional[str], model) -> Optional[ResourceMetadata]:
    if registry is None:
        return None
    related = registry.get(slug) if slug else None
    if related is None and model is not None:
        related = registry.for_model(model)
    return related


def serialize_nested(instance, metadata: Optional[ResourceMetadata], context: OutputContext) -> WireRecord:
    """
    Serialize a related instance: the non-relation fields of its resource,
    or the model columns when the model has no registered resource.
    On the external channel, records of internal resources are reduced to their id.
    """
    result = WireRecord()
    if metadata is not None:
        record = Record(instance=instance, id=getattr(instance, metadata.primary_key, None))
        if context.is_external and metadata.internal:
            result[metadata.primary_key] = {
                "key": metadata.primary_key,
                "name": "ID",
                "view": "id-field",
                "type": column_json_type(metadata.pk_column),
                "data": record.id,
                "context": "",
            }
            return result
        for bound_field in metadata.value_fields:
            if bound_field.field.hidden_for(context):
                continue
            result[bound_field.key] = field_view(bound_field, record, context)
        return result

    mapper = sqla_inspect(type(instance))
    for attr in mapper.column_attrs:
        column = attr.columns[0]
        result[attr.key] = {
            "key": attr.key,
            "name": attr.key.replace("_", " ").title(),
            "view": "text-field",
            "type": column_json_type(column),
            "data": getattr(instance, attr.key),
            "context": "",
        }
    return result


def flatten(wire_record: Dict[str, Dict[str, Any]], context: OutputContext = EXTERNAL_DETAIL) -> Dict[str, Any]:
    """
    Collapse every field view to its data, nested wire records are flattened as well.
    Field views marked hidden for `context` are dropped.
    A poly link keeps its concrete type in a "<key>_type" entry, e.g.

        {"commentable": {"id": 1, "title": "First post"}, "commentable_type": "posts"}

    :return: plain key => value mapping
    """
    hidden = hidden_flags_for(context)
    result = {}
    for key, view in wire_record.items():
        flags = set((view.get("context") or "").split())
        if flags & hidden:
            sapanel.log.debug(f"flatten: dropping hidden field {key}")
            continue
        result[key] = _flatten_data(view.get("data"), context)
        if "morph_type" in view:
            result[f"{key}_type"] = view["morph_type"]
    return result


def _flatten_data(data, context: OutputContext):
    if isinstance(data, WireRecord):
        return flatten(data, context)
    if isinstance(data, list):
        return [_flatten_data(item, context) for item in data]
    return data
