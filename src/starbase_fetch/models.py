"""
Core data model for StarBase-Fetch.

Typed values (data items), properties and per-request options shared by
the storage layer and the query-result content fetcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, ClassVar, Optional, Union
import hashlib


class ValueKind(IntEnum):
    """Kind of a stored value; decides which property table holds it."""
    BLOB = 0
    BOOLEAN = 1
    NUMBER = 2
    WIKIPAGE = 3


# =============================================================================
# Data Items
# =============================================================================

@dataclass(frozen=True, slots=True)
class Blob:
    """A text value. May contain embedded `[[Prop::value]]` annotations."""
    kind: ClassVar[ValueKind] = ValueKind.BLOB
    text: str

    @property
    def hash(self) -> str:
        return self.text

    @property
    def sortkey(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class Boolean:
    kind: ClassVar[ValueKind] = ValueKind.BOOLEAN
    value: bool

    @property
    def hash(self) -> str:
        return "t" if self.value else "f"

    @property
    def sortkey(self) -> int:
        return int(self.value)


@dataclass(frozen=True, slots=True)
class Number:
    kind: ClassVar[ValueKind] = ValueKind.NUMBER
    value: float

    @property
    def hash(self) -> str:
        return repr(float(self.value))

    @property
    def sortkey(self) -> float:
        return float(self.value)


@dataclass(frozen=True, slots=True)
class WikiPage:
    """
    Entity reference (a page or a subobject of a page).

    Used both as a value and as the subject of a query result row.
    The surrogate ID is not part of the item; it is resolved and cached
    by the EntityIdTable.
    """
    kind: ClassVar[ValueKind] = ValueKind.WIKIPAGE
    title: str
    namespace: int = 0
    interwiki: str = ""
    subobject: str = ""

    @property
    def hash(self) -> str:
        return f"{self.title}#{self.namespace}#{self.interwiki}#{self.subobject}"

    @property
    def sortkey(self) -> str:
        return self.title.replace("_", " ")

    def keys(self) -> tuple:
        """The durable key tuple identifying this entity."""
        return (self.title, self.namespace, self.interwiki, self.subobject)


DataItem = Union[Blob, Boolean, Number, WikiPage]


# =============================================================================
# Properties
# =============================================================================

@dataclass(frozen=True, slots=True)
class Property:
    """
    A property reference.

    Attributes:
        key: Property key (e.g. "Has_text")
        inverse: True when evaluated value -> subject ("what points to me")
    """
    key: str
    inverse: bool = False

    @property
    def cache_key(self) -> str:
        """Cache bucket name; inverse properties get the `-` prefix."""
        return f"-{self.key}" if self.inverse else self.key

    def non_inverse(self) -> "Property":
        return Property(self.key, inverse=False)

    @classmethod
    def from_label(cls, label: str) -> "Property":
        """Parse `Key` or `-Key` (inverse) notation."""
        label = label.strip().replace(" ", "_")
        if label.startswith("-"):
            return cls(label[1:], inverse=True)
        return cls(label)


# =============================================================================
# Request Options
# =============================================================================

@dataclass
class RequestOptions:
    """
    Per-request controls for a property value lookup.

    Attributes:
        limit: Maximum values to return (-1 = unlimited)
        offset: Number of values to skip
        sort: Sort by the value sortkey
        ascending: Sort direction when `sort` is set
        exclude_limit: Do not apply limit/offset inside the store lookup
        is_chain: Dotted chain marker (e.g. "Has_friend.Has_name") or None
    """
    # Disables store-side result-count constraints (legacy fetch)
    CONDITION_CONSTRAINT_RESULT: ClassVar[str] = "condition.constraint.result"

    limit: int = -1
    offset: int = 0
    sort: bool = False
    ascending: bool = True
    exclude_limit: bool = False
    is_chain: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)

    def set_option(self, key: str, value: Any) -> None:
        self.options[key] = value

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def copy(self, **changes: Any) -> "RequestOptions":
        """Return a copy with `changes` applied; the option map is not shared."""
        changes.setdefault("options", dict(self.options))
        return replace(self, **changes)


def fingerprint(
    subjects: list[WikiPage],
    prop: Property,
    is_chain: Optional[str] = None,
) -> str:
    """Content hash identifying one batched lookup."""
    parts = [s.hash for s in subjects]
    parts.append(prop.key)
    parts.append("1" if prop.inverse else "")
    parts.append(is_chain or "")
    return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()
