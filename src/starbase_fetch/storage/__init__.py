"""
StarBase-Fetch Storage Layer.

Polars-backed property tables with surrogate entity ids, batched
lookups and the request-scoped bulk loader.
"""

from starbase_fetch.storage.ids import EntityId, EntityIdTable, INVALID_ID
from starbase_fetch.storage.types import (
    DataTypeRegistry,
    PropertyTableDefinition,
    DEFAULT_TABLES,
)
from starbase_fetch.storage.codec import ValueCodec, ValueDecodeError
from starbase_fetch.storage.store import PropertyStore, StoreStats, PROPERTY_NAMESPACE
from starbase_fetch.storage.lookups import (
    PrefetchService,
    InverseSubjectService,
    SemanticDataLookup,
    PropertySubjectsLookup,
)
from starbase_fetch.storage.link_batch import LinkPrefetcher, LinkBatch, NullLinkBatch
from starbase_fetch.storage.bulk_loader import BulkLoader, LoaderStats, create_bulk_loader

__all__ = [
    "EntityId",
    "EntityIdTable",
    "INVALID_ID",
    "DataTypeRegistry",
    "PropertyTableDefinition",
    "DEFAULT_TABLES",
    "ValueCodec",
    "ValueDecodeError",
    "PropertyStore",
    "StoreStats",
    "PROPERTY_NAMESPACE",
    # Batched lookups
    "PrefetchService",
    "InverseSubjectService",
    "SemanticDataLookup",
    "PropertySubjectsLookup",
    # Link prefetching
    "LinkPrefetcher",
    "LinkBatch",
    "NullLinkBatch",
    # Bulk loading
    "BulkLoader",
    "LoaderStats",
    "create_bulk_loader",
]
