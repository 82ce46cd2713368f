"""
Value codec: raw stored key tuples <-> typed data items.

A key tuple is the content of a property table's value columns for one
row (entity-valued columns are first joined to the entity's durable key).
Rows written under a different property type than the one now declared
fail to decode; callers drop such rows.
"""

from typing import Any

from starbase_fetch.models import (
    Blob,
    Boolean,
    DataItem,
    Number,
    ValueKind,
    WikiPage,
)


class ValueDecodeError(ValueError):
    """Raised when a stored key tuple cannot be turned into a data item."""
    pass


_TRUE = frozenset({"1", "t", "true"})
_FALSE = frozenset({"0", "f", "false"})


def _expect(keys: tuple, arity: int, kind: ValueKind) -> None:
    if not isinstance(keys, tuple) or len(keys) != arity:
        raise ValueDecodeError(f"{kind.name}: expected {arity} key(s), got {keys!r}")
    if keys[0] is None:
        raise ValueDecodeError(f"{kind.name}: missing key in {keys!r}")


class ValueCodec:
    """Converts key tuples to data items and back."""

    def decode(self, kind: ValueKind, keys: tuple) -> DataItem:
        """
        Build a data item of `kind` from its key tuple.

        Raises:
            ValueDecodeError: wrong arity, missing or unparsable key
        """
        match kind:
            case ValueKind.BLOB:
                _expect(keys, 1, kind)
                if not isinstance(keys[0], str):
                    raise ValueDecodeError(f"BLOB: not a string: {keys[0]!r}")
                return Blob(keys[0])
            case ValueKind.BOOLEAN:
                _expect(keys, 1, kind)
                return Boolean(self._parse_bool(keys[0]))
            case ValueKind.NUMBER:
                _expect(keys, 1, kind)
                try:
                    return Number(float(keys[0]))
                except (TypeError, ValueError) as e:
                    raise ValueDecodeError(f"NUMBER: {e}") from e
            case ValueKind.WIKIPAGE:
                _expect(keys, 4, kind)
                title, namespace, interwiki, subobject = keys
                if not title:
                    raise ValueDecodeError(f"WIKIPAGE: empty title in {keys!r}")
                try:
                    namespace = int(namespace)
                except (TypeError, ValueError) as e:
                    raise ValueDecodeError(f"WIKIPAGE: bad namespace {namespace!r}") from e
                return WikiPage(title, namespace, interwiki or "", subobject or "")
            case _:
                raise ValueDecodeError(f"Unknown value kind: {kind!r}")

    def encode(self, item: DataItem) -> tuple:
        """Key tuple for `item` (entity references encode their durable key)."""
        match item:
            case Blob(text=text):
                return (text,)
            case Boolean(value=value):
                return ("1" if value else "0",)
            case Number(value=value):
                return (repr(float(value)),)
            case WikiPage():
                return item.keys()
            case _:
                raise TypeError(f"Cannot encode {type(item).__name__}")

    @staticmethod
    def _parse_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueDecodeError(f"BOOLEAN: cannot parse {value!r}")
