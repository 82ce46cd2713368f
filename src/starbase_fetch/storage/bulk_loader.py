"""
Bulk loading of property values for query results.

Given all subjects of a query result and one property, issues a single
batched lookup instead of one lookup per subject, memoizes the decoded
values and serves them per subject afterwards.

Cache layout:
    cache key (property cache key, or chain marker) ->
        subject id -> {value hash: value}

The inner mapping keeps values unique per subject and property and
preserves decode order. A loader lives for one query-result evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from starbase_fetch.models import (
    DataItem,
    Property,
    RequestOptions,
    ValueKind,
    WikiPage,
    fingerprint,
)
from starbase_fetch.storage.codec import ValueDecodeError
from starbase_fetch.storage.ids import INVALID_ID, EntityId
from starbase_fetch.storage.link_batch import LinkBatch, LinkPrefetcher
from starbase_fetch.storage.lookups import (
    InverseSubjectService,
    PrefetchService,
    PropertySubjectsLookup,
    SemanticDataLookup,
)
from starbase_fetch.storage.store import PropertyStore

logger = logging.getLogger(__name__)


@dataclass
class LoaderStats:
    """Counters for one loader's lifetime."""
    loads: int = 0              # batched lookups issued
    skipped_loads: int = 0      # repeated fingerprints
    decode_failures: int = 0    # dropped key tuples
    skipped_subjects: int = 0   # unresolvable or wrong-kind subjects (inverse)
    unresolved_tables: int = 0  # properties without a table

    def to_dict(self) -> dict:
        return {
            "loads": self.loads,
            "skipped_loads": self.skipped_loads,
            "decode_failures": self.decode_failures,
            "skipped_subjects": self.skipped_subjects,
            "unresolved_tables": self.unresolved_tables,
        }


Buckets = dict[EntityId, dict[str, DataItem]]


class BulkLoader:
    """
    Request-scoped bulk loader.

    Thread-safety: NOT thread-safe. One instance per query-result evaluation.
    """

    def __init__(
        self,
        store: PropertyStore,
        semantic_data_lookup: PrefetchService,
        property_subjects_lookup: InverseSubjectService,
        link_batch: LinkPrefetcher,
    ):
        self._store = store
        self._semantic_data_lookup = semantic_data_lookup
        self._property_subjects_lookup = property_subjects_lookup
        self._link_batch = link_batch

        self._cache: dict[str, Buckets] = {}
        self._lookup_log: set[str] = set()
        self.load_stats = LoaderStats()

    def stats(self) -> dict:
        return self.load_stats.to_dict()

    def is_cached(self, prop: Property) -> bool:
        """True when values of `prop` were loaded for any subject set."""
        return prop.cache_key in self._cache

    def load(self, subjects: list, prop: Property, options: RequestOptions) -> None:
        """
        Load the values of `prop` for all `subjects` with one batched lookup.

        Repeating a load with the same subjects, property and chain marker
        is a no-op. Results are merged into values already cached under
        the same key.
        """
        key = fingerprint(subjects, prop, options.is_chain)
        if key in self._lookup_log:
            self.load_stats.skipped_loads += 1
            logger.debug(f"Skipping repeated load of {prop.cache_key} ({key})")
            return

        for subject in subjects:
            self._link_batch.add(subject)

        # A chain stores under its dotted marker so it never mixes with
        # a printout of the same property
        cache_key = options.is_chain or prop.cache_key

        if prop.inverse:
            result = self._load_inverse(subjects, prop, options)
        else:
            result = self._load_forward(subjects, prop, options)

        self._merge(cache_key, result)
        self._link_batch.flush()
        self._lookup_log.add(key)

    def _load_inverse(self, subjects: list, prop: Property, options: RequestOptions) -> Buckets:
        store = self._store
        noninverse = prop.non_inverse()
        kind = store.value_kind(noninverse)

        table = store.find_property_table(noninverse)
        if table is None:
            self.load_stats.unresolved_tables += 1
            logger.debug(f"No property table for {noninverse.key}")
            return {}

        ids = []
        for subject in subjects:
            if subject.kind != kind:
                self.load_stats.skipped_subjects += 1
                continue
            entity_id = store.ids.get_id(subject, create=True)
            if entity_id == INVALID_ID:
                self.load_stats.skipped_subjects += 1
                continue
            ids.append(entity_id)

        if not ids:
            return {}

        self.load_stats.loads += 1
        data = self._property_subjects_lookup.prefetch_inverse(ids, prop, table, options)

        result: Buckets = {}
        for value_id, referrers in data.items():
            bucket = result.setdefault(value_id, {})
            for referrer in referrers:
                bucket.setdefault(referrer.hash, referrer)
                self._link_batch.add(referrer)

        return result

    def _load_forward(self, subjects: list, prop: Property, options: RequestOptions) -> Buckets:
        store = self._store

        table = store.find_property_table(prop)
        if table is None:
            self.load_stats.unresolved_tables += 1
            logger.debug(f"No property table for {prop.key}")
            return {}

        pages = [subject for subject in subjects if isinstance(subject, WikiPage)]
        if not pages:
            return {}

        # Limiting a `WHERE IN` batch would cut values of arbitrary
        # subjects; the caller applies limits after merging
        self.load_stats.loads += 1
        data = self._semantic_data_lookup.prefetch(
            pages, prop, table, options.copy(exclude_limit=True)
        )

        result: Buckets = {}
        decoded: list[DataItem] = []

        for entity_id, rows in data.items():
            bucket = result.setdefault(entity_id, {})
            for keys in rows:
                try:
                    item = store.codec.decode(table.value_kind, keys)
                except ValueDecodeError as e:
                    # Type changed since the data was stored; drop the row
                    self.load_stats.decode_failures += 1
                    logger.debug(f"Dropping value of {prop.key} for subject {entity_id}: {e}")
                    continue
                decoded.append(item)
                bucket.setdefault(item.hash, item)
                self._link_batch.add(item)

        if table.value_kind == ValueKind.WIKIPAGE:
            store.ids.warm_up_cache(decoded)

        return result

    def _merge(self, cache_key: str, result: Buckets) -> None:
        cached = self._cache.setdefault(cache_key, {})
        for entity_id, bucket in result.items():
            existing = cached.setdefault(entity_id, {})
            for value_hash, item in bucket.items():
                existing.setdefault(value_hash, item)

    def get(self, subject: WikiPage, prop: Property) -> list[DataItem]:
        """Cached values of `prop` for `subject`, in decode order."""
        entity_id = self._store.ids.get_id(subject, create=True)
        bucket = self._cache.get(prop.cache_key, {}).get(entity_id)
        if not bucket:
            return []
        return list(bucket.values())


def create_bulk_loader(
    store: PropertyStore,
    link_batch: Optional[LinkPrefetcher] = None,
) -> BulkLoader:
    """Build a BulkLoader wired to the store's batched lookups."""
    if link_batch is None:
        link_batch = LinkBatch(store.ids)
    return BulkLoader(
        store,
        SemanticDataLookup(store),
        PropertySubjectsLookup(store),
        link_batch,
    )
