"""
Print request: one output column of a query result.
"""

from dataclasses import dataclass
from enum import IntFlag
from typing import Optional

from starbase_fetch.models import Property


class QueryFeature(IntFlag):
    """Result evaluation features."""
    NONE = 0
    PREFETCH = 1


@dataclass(frozen=True)
class PrintRequest:
    """
    A print column.

    Attributes:
        label: Column label
        property: Property printed by the column
        type_id: Declared type of the column's values (e.g. "_txt")
        output_format: Requested output format (e.g. "-raw", "-hl")
        chain: Dotted chain marker when the column follows several properties
    """
    label: str
    property: Optional[Property] = None
    type_id: str = ""
    output_format: str = ""
    chain: Optional[str] = None

    def has_format_marker(self, marker: str) -> bool:
        return marker in self.output_format
