"""
Batched property lookups.

Both lookups answer for a whole batch of ids with a single `is_in`
filter over the property table, replacing one lookup per subject.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import polars as pl

from starbase_fetch.models import Property, RequestOptions, ValueKind, WikiPage
from starbase_fetch.storage.ids import INVALID_ID, EntityId
from starbase_fetch.storage.store import PropertyStore
from starbase_fetch.storage.types import PropertyTableDefinition

logger = logging.getLogger(__name__)


class PrefetchService(ABC):
    """Fetches raw value key tuples of one property for many subjects."""

    @abstractmethod
    def prefetch(
        self,
        subjects: list[WikiPage],
        prop: Property,
        table: PropertyTableDefinition,
        options: RequestOptions,
    ) -> dict[EntityId, list[tuple]]:
        """Map of subject id -> key tuples, in stored order."""
        pass


class InverseSubjectService(ABC):
    """Fetches the subjects pointing to many values through one property."""

    @abstractmethod
    def prefetch_inverse(
        self,
        value_ids: list[EntityId],
        prop: Property,
        table: PropertyTableDefinition,
        options: RequestOptions,
    ) -> dict[EntityId, list[WikiPage]]:
        """Map of value id -> referencing subjects."""
        pass


def _limit_batch(df: pl.DataFrame, options: Optional[RequestOptions]) -> pl.DataFrame:
    # A limit here truncates the batch as a whole, not per subject
    if options is None or options.exclude_limit:
        return df
    if options.offset > 0:
        df = df.slice(options.offset)
    if options.limit >= 0:
        df = df.head(options.limit)
    return df


class SemanticDataLookup(PrefetchService):
    """Forward batched lookup: `s_id IN (...) AND p_id = ?`."""

    def __init__(self, store: PropertyStore):
        self._store = store

    def prefetch(
        self,
        subjects: list[WikiPage],
        prop: Property,
        table: PropertyTableDefinition,
        options: RequestOptions,
    ) -> dict[EntityId, list[tuple]]:
        store = self._store
        store.query_stats.prefetch_queries += 1

        p_id = store.property_id(prop)
        ids = [i for i in store.ids.get_ids(subjects) if i != INVALID_ID]
        if p_id == INVALID_ID or not ids:
            return {}

        df = store.frame(table.table_id).filter(
            pl.col("s_id").is_in(ids) & (pl.col("p_id") == p_id)
        )
        df = store.resolve_rows(table, _limit_batch(df, options))

        result: dict[EntityId, list[tuple]] = {}
        columns = ("s_id",) + store.key_columns(table)
        for row in df.select(list(columns)).iter_rows():
            result.setdefault(row[0], []).append(tuple(row[1:]))

        logger.debug(
            f"Prefetched {len(df)} row(s) of {prop.key} for {len(ids)} subject(s)"
        )
        return result


class PropertySubjectsLookup(InverseSubjectService):
    """Inverse batched lookup: `o_id IN (...) AND p_id = ?`."""

    def __init__(self, store: PropertyStore):
        self._store = store

    def prefetch_inverse(
        self,
        value_ids: list[EntityId],
        prop: Property,
        table: PropertyTableDefinition,
        options: RequestOptions,
    ) -> dict[EntityId, list[WikiPage]]:
        store = self._store
        store.query_stats.prefetch_queries += 1

        if table.value_kind != ValueKind.WIKIPAGE or not value_ids:
            return {}

        p_id = store.property_id(prop.non_inverse())
        if p_id == INVALID_ID:
            return {}

        df = store.frame(table.table_id).filter(
            pl.col("o_id").is_in(value_ids) & (pl.col("p_id") == p_id)
        )
        df = _limit_batch(df, options)

        result: dict[EntityId, list[WikiPage]] = {}
        for o_id, s_id in df.select(["o_id", "s_id"]).iter_rows():
            subject = store.ids.lookup(s_id)
            if subject is not None:
                result.setdefault(o_id, []).append(subject)

        logger.debug(
            f"Prefetched {len(df)} inverse row(s) of {prop.key} for {len(value_ids)} value(s)"
        )
        return result
