# flake8: noqa: F401
#
# DB and log are set in panel_init, the other modules use them as sapanel.DB and sapanel.log
#
from .panel_init import DB, log, SAPanel
from .errors import (
    PanelError,
    ValidationError,
    GenericError,
    UnAuthorizedError,
    NotFoundError,
    ConflictError,
    InconsistentStateError,
    StoreUnavailableError,
    SystemValidationError,
)
from .operators import FilterOperator
from .query import Query, FilterGroup, Filter, Sort, QueryDefaults
from .query_parser import parse_query, parse_nested, parse_flat
from .context import Channel, OutputView, OutputContext, RequestContext
from .fields import (
    RelationShape,
    Field,
    ID,
    Text,
    Textarea,
    Email,
    Password,
    Number,
    Boolean,
    Date,
    DateTime,
    Select,
    BelongsTo,
    HasOne,
    HasMany,
    BelongsToMany,
    MorphTo,
    MorphMany,
)
from .resource import Resource, Policy
from .metadata import ResourceMetadata
from .provider import DataProvider, CredentialedDataProvider, Record, IndexResult
from .serializer import serialize, serialize_many, flatten
from .registry import ResourceRegistry
from .request import PanelRequest
from .json_encoder import PanelJSONProvider
from .api import PanelAPI
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "SAPanel",
    "PanelAPI",
    "DB",
    "log",
    # query:
    "FilterOperator",
    "Query",
    "FilterGroup",
    "Filter",
    "Sort",
    "QueryDefaults",
    "parse_query",
    "parse_nested",
    "parse_flat",
    # resources:
    "Resource",
    "Policy",
    "ResourceMetadata",
    "ResourceRegistry",
    "RelationShape",
    "Field",
    "ID",
    "Text",
    "Textarea",
    "Email",
    "Password",
    "Number",
    "Boolean",
    "Date",
    "DateTime",
    "Select",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "BelongsToMany",
    "MorphTo",
    "MorphMany",
    # data access:
    "DataProvider",
    "CredentialedDataProvider",
    "Record",
    "IndexResult",
    "Channel",
    "OutputView",
    "OutputContext",
    "RequestContext",
    "serialize",
    "serialize_many",
    "flatten",
    # Errors:
    "PanelError",
    "ValidationError",
    "GenericError",
    "UnAuthorizedError",
    "NotFoundError",
    "ConflictError",
    "InconsistentStateError",
    "StoreUnavailableError",
    "SystemValidationError",
    # request
    "PanelRequest",
    "PanelJSONProvider",
)
