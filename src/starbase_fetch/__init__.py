"""
StarBase-Fetch: batched property value loading for semantic query results.

Loads the values of a print column for all subjects of a result with one
store round trip, memoizes them per request and prepares text values for
display.
"""

__version__ = "0.1.0"

from starbase_fetch.models import (
    ValueKind,
    Blob,
    Boolean,
    Number,
    WikiPage,
    DataItem,
    Property,
    RequestOptions,
)
from starbase_fetch.config import FetchConfig, ConfigValidationError
from starbase_fetch.storage import (
    PropertyStore,
    BulkLoader,
    create_bulk_loader,
    LinkBatch,
    NullLinkBatch,
    ValueDecodeError,
)
from starbase_fetch.query import (
    ContentFetcher,
    PrintRequest,
    QueryFeature,
    QueryToken,
    remove_annotation,
)

__all__ = [
    # Data model
    "ValueKind",
    "Blob",
    "Boolean",
    "Number",
    "WikiPage",
    "DataItem",
    "Property",
    "RequestOptions",
    # Configuration
    "FetchConfig",
    "ConfigValidationError",
    # Storage
    "PropertyStore",
    "BulkLoader",
    "create_bulk_loader",
    "LinkBatch",
    "NullLinkBatch",
    "ValueDecodeError",
    # Query results
    "ContentFetcher",
    "PrintRequest",
    "QueryFeature",
    "QueryToken",
    "remove_annotation",
]
