"""
Entity ID table with integer surrogate IDs.

Maps entity references (pages and subobjects) to integer IDs used by the
property tables. Key design decisions:
- ID 0 is reserved as the invalid/unresolved ID
- Hash-based interning on the entity's durable key
- Fast-path cache that can be warmed in bulk before per-item lookups
- Polars export so entity-valued columns can be joined in one pass
"""

from typing import Iterable, Optional

import polars as pl

from starbase_fetch.models import WikiPage


# Type alias for surrogate identifiers
EntityId = int

INVALID_ID: EntityId = 0


class EntityIdTable:
    """
    Surrogate ID catalog for entity references.

    Thread-safety: NOT thread-safe. Use external synchronization for concurrent access.
    """

    def __init__(self):
        # NOTE: Start at 1 to reserve 0 as the universal "unresolved" value
        self._next_id: EntityId = 1

        # Forward map: entity hash -> id
        self._hash_to_id: dict[str, EntityId] = {}

        # Reverse map: id -> entity
        self._id_to_page: dict[EntityId, WikiPage] = {}

        # Fast path: pre-resolved ids, filled by warm_up_cache()
        self._cache: dict[str, EntityId] = {}

        # Statistics
        self.cache_hits = 0
        self.table_lookups = 0

    def get_id(self, page: WikiPage, create: bool = False) -> EntityId:
        """
        Resolve the surrogate ID of `page`.

        Returns INVALID_ID when the page is unknown and `create` is False.
        """
        key = page.hash
        cached = self._cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            return cached

        self.table_lookups += 1
        entity_id = self._hash_to_id.get(key)
        if entity_id is None:
            if not create:
                return INVALID_ID
            entity_id = self._allocate(page)

        self._cache[key] = entity_id
        return entity_id

    def get_ids(self, pages: Iterable[WikiPage], create: bool = False) -> list[EntityId]:
        """Bulk resolve ids, returned in the same order."""
        return [self.get_id(page, create=create) for page in pages]

    def _allocate(self, page: WikiPage) -> EntityId:
        entity_id = self._next_id
        self._next_id += 1
        self._hash_to_id[page.hash] = entity_id
        self._id_to_page[entity_id] = page
        return entity_id

    def lookup(self, entity_id: EntityId) -> Optional[WikiPage]:
        """Look up an entity by its ID."""
        return self._id_to_page.get(entity_id)

    def warm_up_cache(self, items: Iterable) -> int:
        """
        Pre-resolve the IDs of all entity references in `items`.

        Non-entity items are ignored and unknown entities are not created.
        Returns the number of entities newly placed in the fast-path cache.
        """
        warmed = 0
        for item in items:
            if not isinstance(item, WikiPage):
                continue
            key = item.hash
            if key in self._cache:
                continue
            entity_id = self._hash_to_id.get(key)
            if entity_id is None:
                continue
            self._cache[key] = entity_id
            warmed += 1
        return warmed

    def is_cached(self, page: WikiPage) -> bool:
        return page.hash in self._cache

    def clear_cache(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._id_to_page)

    def to_dataframe(self) -> pl.DataFrame:
        """
        Export the table to a Polars DataFrame.

        Schema:
        - id: u64
        - title: string
        - namespace: i64
        - interwiki: string
        - subobject: string
        """
        if not self._id_to_page:
            return pl.DataFrame({
                "id": pl.Series([], dtype=pl.UInt64),
                "title": pl.Series([], dtype=pl.Utf8),
                "namespace": pl.Series([], dtype=pl.Int64),
                "interwiki": pl.Series([], dtype=pl.Utf8),
                "subobject": pl.Series([], dtype=pl.Utf8),
            })

        rows = []
        for entity_id, page in self._id_to_page.items():
            rows.append({
                "id": entity_id,
                "title": page.title,
                "namespace": page.namespace,
                "interwiki": page.interwiki,
                "subobject": page.subobject,
            })

        return pl.DataFrame(rows).cast({
            "id": pl.UInt64,
            "namespace": pl.Int64,
        })
