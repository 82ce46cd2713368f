"""
Query result content: print columns, text value display and fetching.
"""

from starbase_fetch.query.print_request import PrintRequest, QueryFeature
from starbase_fetch.query.annotation import remove_annotation
from starbase_fetch.query.tokens import QueryToken
from starbase_fetch.query.content_fetcher import (
    ContentFetcher,
    ChainState,
    Chained,
    NotChained,
    chain_state,
)

__all__ = [
    "PrintRequest",
    "QueryFeature",
    "remove_annotation",
    "QueryToken",
    "ContentFetcher",
    "ChainState",
    "Chained",
    "NotChained",
    "chain_state",
]
