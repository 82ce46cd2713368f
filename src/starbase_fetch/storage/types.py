"""
Property type registry and property table descriptors.
"""

from dataclasses import dataclass
from typing import Optional

from starbase_fetch.models import ValueKind


@dataclass(frozen=True, slots=True)
class PropertyTableDefinition:
    """
    Descriptor of one property table.

    Attributes:
        table_id: Table name
        value_kind: Kind of values the table stores
        value_columns: Columns forming a value's raw key tuple
    """
    table_id: str
    value_kind: ValueKind
    value_columns: tuple[str, ...]


# One table per value kind
DEFAULT_TABLES: dict[ValueKind, PropertyTableDefinition] = {
    ValueKind.BLOB: PropertyTableDefinition("di_blob", ValueKind.BLOB, ("o_blob",)),
    ValueKind.BOOLEAN: PropertyTableDefinition("di_bool", ValueKind.BOOLEAN, ("o_value",)),
    ValueKind.NUMBER: PropertyTableDefinition("di_number", ValueKind.NUMBER, ("o_serialized",)),
    ValueKind.WIKIPAGE: PropertyTableDefinition("di_wikipage", ValueKind.WIKIPAGE, ("o_id",)),
}


class DataTypeRegistry:
    """
    Maps property type ids to value kinds.

    Several type ids share a value kind: `_cod` (code) and `_eid`
    (external identifier) are stored as blobs just like `_txt`.
    """

    BUILTIN_TYPES = {
        "_txt": ValueKind.BLOB,
        "_cod": ValueKind.BLOB,
        "_eid": ValueKind.BLOB,
        "_num": ValueKind.NUMBER,
        "_boo": ValueKind.BOOLEAN,
        "_wpg": ValueKind.WIKIPAGE,
        "_rec": ValueKind.WIKIPAGE,
    }

    def __init__(self):
        self._types: dict[str, ValueKind] = dict(self.BUILTIN_TYPES)

    def register(self, type_id: str, kind: ValueKind) -> None:
        self._types[type_id] = kind

    def get_value_kind(self, type_id: str) -> Optional[ValueKind]:
        """Value kind for `type_id`, None if the type is unknown."""
        return self._types.get(type_id)

    def is_known(self, type_id: str) -> bool:
        return type_id in self._types

    def type_ids(self) -> list[str]:
        return sorted(self._types)
