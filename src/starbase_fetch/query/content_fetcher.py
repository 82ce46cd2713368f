"""
Content fetching for query result columns.

Drives the BulkLoader for each print column, falls back to one lookup
per subject when prefetching is switched off, and rewrites text values
for display (annotation removal, token highlighting).

Column options (sort, limit) are not applied here: in batched mode
values of all chain hops are merged first and the caller applies
`PropertyStore.apply_request_options` to the merged list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from starbase_fetch.config import FetchConfig
from starbase_fetch.models import (
    Blob,
    DataItem,
    Property,
    RequestOptions,
    WikiPage,
)
from starbase_fetch.query.annotation import remove_annotation
from starbase_fetch.query.print_request import PrintRequest, QueryFeature
from starbase_fetch.query.tokens import QueryToken
from starbase_fetch.storage.bulk_loader import BulkLoader, create_bulk_loader
from starbase_fetch.storage.link_batch import LinkBatch, NullLinkBatch
from starbase_fetch.storage.store import PropertyStore

logger = logging.getLogger(__name__)


# =============================================================================
# Chain State
# =============================================================================

@dataclass(frozen=True)
class NotChained:
    """A plain property column."""

    def read_property(self, prop: Property) -> Property:
        return prop


@dataclass(frozen=True)
class Chained:
    """
    A column following a property chain (e.g. `Has friend.Has name`).

    Values are cached under the dotted marker, so reads use a property
    keyed by the marker instead of the terminal property.
    """
    marker: str
    hop_index: int
    property: Property

    def read_property(self, prop: Property) -> Property:
        return self.property


ChainState = Union[NotChained, Chained]

NOT_CHAINED = NotChained()


def chain_state(options: RequestOptions) -> ChainState:
    """Chain state carried by the request options."""
    marker = options.is_chain
    if not marker:
        return NOT_CHAINED
    return Chained(marker=marker, hop_index=marker.count("."), property=Property(marker))


# =============================================================================
# Content Fetcher
# =============================================================================

class ContentFetcher:
    """
    Fetches the values of one print column for the subjects of a result.

    Args:
        store: Property store
        data_items: All subjects of the query result
        bulk_loader_factory: Builds the BulkLoader on the first batched fetch
        config: Fetch configuration
    """

    def __init__(
        self,
        store: PropertyStore,
        data_items: list,
        bulk_loader_factory: Callable[[], BulkLoader],
        config: Optional[FetchConfig] = None,
    ):
        self._store = store
        self._data_items = list(data_items)
        self._bulk_loader_factory = bulk_loader_factory
        self._bulk_loader: Optional[BulkLoader] = None
        self._config = config if config is not None else FetchConfig()
        self._prefetch = self._config.prefetch_enabled
        self._print_request: Optional[PrintRequest] = None
        self._query_token: Optional[QueryToken] = None

    @classmethod
    def for_store(
        cls,
        store: PropertyStore,
        data_items: list,
        config: Optional[FetchConfig] = None,
    ) -> "ContentFetcher":
        """Fetcher whose bulk loader uses the store's own lookups."""
        config = config if config is not None else FetchConfig()
        link_batch = LinkBatch(store.ids) if config.link_prefetch else NullLinkBatch()
        return cls(
            store,
            data_items,
            lambda: create_bulk_loader(store, link_batch),
            config,
        )

    def configure(self, prefetch_enabled: bool) -> None:
        """Switch between batched and per-subject fetching."""
        self._prefetch = bool(prefetch_enabled)

    def prefetch(self, features: int) -> None:
        """Enable batched fetching when `features` contains QueryFeature.PREFETCH."""
        self._prefetch = (int(features) & QueryFeature.PREFETCH) != 0

    @property
    def prefetch_enabled(self) -> bool:
        return self._prefetch

    @property
    def bulk_loader(self) -> Optional[BulkLoader]:
        return self._bulk_loader

    def set_print_request(self, print_request: PrintRequest) -> None:
        self._print_request = print_request
        if self._query_token is not None:
            self._query_token.set_output_format(print_request.output_format)

    def set_query_token(self, query_token: Optional[QueryToken] = None) -> None:
        """Use `query_token` for highlighting, with the configured template and marker."""
        self._query_token = query_token
        if query_token is None:
            return
        query_token.apply_config(self._config)
        if self._print_request is not None:
            query_token.set_output_format(self._print_request.output_format)

    def highlight_tokens(self, item: Optional[DataItem]) -> Optional[DataItem]:
        """
        Display form of a text value.

        Only text values of `_txt` and record columns are rewritten;
        other blob-backed types (code, external ids) keep their content.
        Raw output formats keep annotations as written.
        """
        match item:
            case Blob(text=text):
                pass
            case _:
                return item

        print_request = self._print_request
        if print_request is None:
            return item

        config = self._config
        type_id = print_request.type_id
        if type_id not in config.text_type_ids and config.record_type_marker not in type_id:
            return item

        if any(print_request.has_format_marker(m) for m in config.raw_format_markers):
            return item

        text = remove_annotation(text)
        if self._query_token is not None:
            text = self._query_token.highlight(text)

        return Blob(text)

    def fetch(self, data_items: list, prop: Property, options: RequestOptions) -> list:
        """
        Values of `prop` for each of `data_items`, flattened in subject order.

        Items that are not pages are skipped.
        """
        if not self._prefetch:
            return self.legacy_fetch(data_items, prop, options)

        if self._bulk_loader is None:
            self._bulk_loader = self._bulk_loader_factory()

        state = chain_state(options)

        # A chain is traversed from different subjects at every hop, so
        # it always reloads
        if isinstance(state, Chained) or not self._bulk_loader.is_cached(prop):
            match state:
                case Chained(marker=marker, hop_index=hop_index):
                    subjects = data_items
                    logger.debug(f"Loading hop {hop_index} of chain {marker}")
                case NotChained():
                    subjects = self._data_items or data_items
            self._bulk_loader.load(subjects, prop, options)

        read_property = state.read_property(prop)

        values = []
        for subject in data_items:
            if not isinstance(subject, WikiPage):
                continue
            values.extend(
                self.highlight_tokens(item)
                for item in self._bulk_loader.get(subject, read_property)
            )

        return values

    def fetch_column(self, data_items: list, options: Optional[RequestOptions] = None) -> list:
        """
        Values of the current print column for `data_items`.

        The column's chain marker, when set, overrides the one in `options`.
        """
        print_request = self._print_request
        if print_request is None or print_request.property is None:
            raise ValueError("No print column with a property is set")

        options = options if options is not None else RequestOptions()
        if print_request.chain:
            options = options.copy(is_chain=print_request.chain)

        return self.fetch(data_items, print_request.property, options)

    def legacy_fetch(self, data_items: list, prop: Property, options: RequestOptions) -> list:
        """One store lookup per subject; used when prefetching is off."""
        options = options.copy()
        # Counting happens after the merge
        options.set_option(RequestOptions.CONDITION_CONSTRAINT_RESULT, False)

        values = []
        for subject in data_items:
            if not isinstance(subject, WikiPage):
                continue
            values.extend(self._store.get_property_values(subject, prop, options))

        logger.debug(f"Legacy fetch of {prop.cache_key} for {len(data_items)} item(s)")
        return [self.highlight_tokens(item) for item in values]
