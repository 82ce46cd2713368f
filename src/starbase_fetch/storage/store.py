"""
In-memory property store backed by Polars.

Values are kept in one table per value kind (`di_blob`, `di_bool`,
`di_number`, `di_wikipage`), each row holding the subject id, the
property id and the value columns. Rows are buffered on write and
materialized into the table's DataFrame on first read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import polars as pl

from starbase_fetch.models import (
    DataItem,
    Property,
    RequestOptions,
    ValueKind,
    WikiPage,
)
from starbase_fetch.storage.codec import ValueCodec, ValueDecodeError
from starbase_fetch.storage.ids import INVALID_ID, EntityId, EntityIdTable
from starbase_fetch.storage.types import (
    DEFAULT_TABLES,
    DataTypeRegistry,
    PropertyTableDefinition,
)

logger = logging.getLogger(__name__)

# Namespace of property pages; a property's id is the id of its page
PROPERTY_NAMESPACE = 102

ENTITY_KEY_COLUMNS = ("title", "namespace", "interwiki", "subobject")

_COLUMN_TYPES = {
    "o_blob": pl.Utf8,
    "o_value": pl.Utf8,
    "o_serialized": pl.Utf8,
    "o_id": pl.UInt64,
}


@dataclass
class StoreStats:
    """Round-trip counters."""
    value_queries: int = 0     # single-subject lookups
    prefetch_queries: int = 0  # batched lookups

    def to_dict(self) -> dict:
        return {
            "value_queries": self.value_queries,
            "prefetch_queries": self.prefetch_queries,
        }


class PropertyStore:
    """
    Property value store.

    Thread-safety: NOT thread-safe. Use external synchronization for concurrent access.
    """

    def __init__(self, types: Optional[DataTypeRegistry] = None):
        self.types = types if types is not None else DataTypeRegistry()
        self.ids = EntityIdTable()
        self.codec = ValueCodec()
        self.query_stats = StoreStats()

        self._tables: dict[str, PropertyTableDefinition] = {
            table.table_id: table for table in DEFAULT_TABLES.values()
        }
        self._property_types: dict[str, str] = {}
        self._frames: dict[str, pl.DataFrame] = {
            table_id: pl.DataFrame(schema=self._schema(table))
            for table_id, table in self._tables.items()
        }
        self._pending: dict[str, list[dict]] = {table_id: [] for table_id in self._tables}

    @staticmethod
    def _schema(table: PropertyTableDefinition) -> dict[str, Any]:
        schema = {"s_id": pl.UInt64, "p_id": pl.UInt64}
        for column in table.value_columns:
            schema[column] = _COLUMN_TYPES[column]
        return schema

    # =========================================================================
    # Property Declarations
    # =========================================================================

    def register_property(self, key: str, type_id: str) -> Property:
        """Declare the type of property `key`."""
        if not self.types.is_known(type_id):
            raise ValueError(f"Unknown property type: {type_id}")
        self._property_types[key] = type_id
        return Property(key)

    def property_type_id(self, prop: Property) -> Optional[str]:
        return self._property_types.get(prop.key)

    def value_kind(self, prop: Property) -> Optional[ValueKind]:
        """Value kind of the (non-inverse) property, None when undeclared."""
        type_id = self.property_type_id(prop)
        if type_id is None:
            return None
        return self.types.get_value_kind(type_id)

    def property_id(self, prop: Property, create: bool = False) -> EntityId:
        page = WikiPage(prop.key, PROPERTY_NAMESPACE)
        return self.ids.get_id(page, create=create)

    def find_property_table(self, prop: Property) -> Optional[PropertyTableDefinition]:
        """
        Table holding the values of `prop` (the inverse flag is ignored).

        Returns None when the property has no declared type.
        """
        kind = self.value_kind(prop)
        if kind is None:
            return None
        return DEFAULT_TABLES.get(kind)

    def get_property_tables(self) -> dict[str, PropertyTableDefinition]:
        return dict(self._tables)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_property_value(self, subject: WikiPage, prop: Property, item: DataItem) -> None:
        """Store `item` as a value of `prop` for `subject`."""
        if prop.inverse:
            raise ValueError("Values are stored on the forward property")
        table = self.find_property_table(prop)
        if table is None:
            raise ValueError(f"Property {prop.key} has no declared type")
        if item.kind != table.value_kind:
            raise ValueError(
                f"Property {prop.key} expects {table.value_kind.name}, got {item.kind.name}"
            )

        keys = self.codec.encode(item)
        if table.value_kind == ValueKind.WIKIPAGE:
            keys = (self.ids.get_id(item, create=True),)
        self._append(table, subject, prop, keys)

    def add_raw_value(self, subject: WikiPage, prop: Property, keys: tuple) -> None:
        """
        Store raw value columns for `prop` without encoding.

        Values written this way bypass type checks, as rows written
        before a property changed its type would.
        """
        table = self.find_property_table(prop)
        if table is None:
            raise ValueError(f"Property {prop.key} has no declared type")
        self._append(table, subject, prop, keys)

    def _append(self, table: PropertyTableDefinition, subject: WikiPage, prop: Property, keys: tuple) -> None:
        if len(keys) != len(table.value_columns):
            raise ValueError(f"{table.table_id} expects {len(table.value_columns)} value column(s)")
        row = {
            "s_id": self.ids.get_id(subject, create=True),
            "p_id": self.property_id(prop, create=True),
        }
        row.update(zip(table.value_columns, keys))
        self._pending[table.table_id].append(row)

    # =========================================================================
    # Reads
    # =========================================================================

    def frame(self, table_id: str) -> pl.DataFrame:
        """Materialized DataFrame of a table."""
        pending = self._pending[table_id]
        if pending:
            table = self._tables[table_id]
            new_rows = pl.DataFrame(pending, schema=self._schema(table))
            self._frames[table_id] = pl.concat([self._frames[table_id], new_rows])
            self._pending[table_id] = []
        return self._frames[table_id]

    def key_columns(self, table: PropertyTableDefinition) -> tuple[str, ...]:
        """Columns forming the decodable key tuple after `resolve_rows`."""
        if table.value_kind == ValueKind.WIKIPAGE:
            return ENTITY_KEY_COLUMNS
        return table.value_columns

    def resolve_rows(self, table: PropertyTableDefinition, df: pl.DataFrame) -> pl.DataFrame:
        """
        Join entity-valued columns to the entity's durable key.

        Row order of `df` is kept; unknown entity ids yield null keys.
        """
        if table.value_kind != ValueKind.WIKIPAGE:
            return df
        return (
            df.with_row_index("_row")
            .join(self.ids.to_dataframe(), left_on="o_id", right_on="id", how="left")
            .sort("_row")
            .drop("_row")
        )

    def get_property_values(
        self,
        subject: WikiPage,
        prop: Property,
        options: Optional[RequestOptions] = None,
    ) -> list:
        """
        Values of `prop` for a single subject (one round trip).

        For an inverse property the subjects pointing at `subject` are
        returned. Rows that cannot be decoded are dropped.
        """
        options = options or RequestOptions()
        self.query_stats.value_queries += 1

        table = self.find_property_table(prop)
        if table is None:
            return []

        p_id = self.property_id(prop)
        entity_id = self.ids.get_id(subject)
        if p_id == INVALID_ID or entity_id == INVALID_ID:
            return []

        df = self.frame(table.table_id)
        if prop.inverse:
            if table.value_kind != ValueKind.WIKIPAGE:
                return []
            rows = df.filter((pl.col("p_id") == p_id) & (pl.col("o_id") == entity_id))
            items = [self.ids.lookup(s_id) for s_id in rows["s_id"].to_list()]
        else:
            rows = self.resolve_rows(
                table,
                df.filter((pl.col("s_id") == entity_id) & (pl.col("p_id") == p_id)),
            )
            items = []
            for keys in rows.select(list(self.key_columns(table))).iter_rows():
                try:
                    items.append(self.codec.decode(table.value_kind, keys))
                except ValueDecodeError as e:
                    logger.debug(f"Dropping value of {prop.key} for {subject.hash}: {e}")

        unique: dict[str, DataItem] = {}
        for item in items:
            if item is not None:
                unique.setdefault(item.hash, item)

        return self.apply_request_options(list(unique.values()), options)

    @staticmethod
    def apply_request_options(items: list, options: Optional[RequestOptions]) -> list:
        """
        Apply sort, offset and limit to a value list.

        Offset and limit are skipped when `exclude_limit` is set or the
        result constraint option is switched off.
        """
        if options is None:
            return list(items)

        result = list(items)
        if options.sort:
            result.sort(key=lambda item: item.sortkey, reverse=not options.ascending)

        constrained = options.get_option(RequestOptions.CONDITION_CONSTRAINT_RESULT, True)
        if options.exclude_limit or constrained is False:
            return result

        if options.offset > 0:
            result = result[options.offset:]
        if options.limit >= 0:
            result = result[:options.limit]
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "entities": len(self.ids),
            "properties": len(self._property_types),
            "rows": {table_id: len(self.frame(table_id)) for table_id in self._tables},
            **self.query_stats.to_dict(),
        }
