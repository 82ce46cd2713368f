"""
Tests for the request-scoped bulk loader.
"""

import pytest

from starbase_fetch.models import (
    Blob,
    Number,
    Property,
    RequestOptions,
    WikiPage,
)
from starbase_fetch.storage.bulk_loader import BulkLoader, create_bulk_loader
from starbase_fetch.storage.link_batch import LinkBatch, NullLinkBatch
from starbase_fetch.storage.lookups import PropertySubjectsLookup, SemanticDataLookup
from starbase_fetch.storage.store import PropertyStore


class CountingLookup(SemanticDataLookup):
    """SemanticDataLookup that records every batched call."""

    def __init__(self, store):
        super().__init__(store)
        self.calls = []

    def prefetch(self, subjects, prop, table, options):
        self.calls.append((list(subjects), prop, options))
        return super().prefetch(subjects, prop, table, options)


class CountingInverseLookup(PropertySubjectsLookup):

    def __init__(self, store):
        super().__init__(store)
        self.calls = []

    def prefetch_inverse(self, value_ids, prop, table, options):
        self.calls.append(list(value_ids))
        return super().prefetch_inverse(value_ids, prop, table, options)


A = WikiPage("A")
B = WikiPage("B")
C = WikiPage("C")
X = WikiPage("X")
Y = WikiPage("Y")


@pytest.fixture
def store():
    """Store with text, number and page properties."""
    store = PropertyStore()
    text = store.register_property("Has_text", "_txt")
    number = store.register_property("Has_number", "_num")
    friend = store.register_property("Has_friend", "_wpg")

    store.add_property_value(A, text, Blob("a1"))
    store.add_property_value(A, text, Blob("a2"))
    store.add_property_value(B, text, Blob("b1"))
    store.add_property_value(C, text, Blob("c1"))

    store.add_property_value(A, number, Number(1))
    store.add_raw_value(A, number, ("not-a-number",))
    store.add_property_value(A, number, Number(2))

    store.add_property_value(A, friend, X)
    store.add_property_value(B, friend, X)
    store.add_property_value(C, friend, Y)
    return store


@pytest.fixture
def lookup(store):
    return CountingLookup(store)


@pytest.fixture
def inverse_lookup(store):
    return CountingInverseLookup(store)


@pytest.fixture
def loader(store, lookup, inverse_lookup):
    return BulkLoader(store, lookup, inverse_lookup, NullLinkBatch())


class TestForwardLoad:
    """Forward property loading."""

    def test_single_batched_call(self, loader, lookup):
        """All subjects are fetched with one lookup."""
        loader.load([A, B, C], Property("Has_text"), RequestOptions())

        assert len(lookup.calls) == 1
        assert lookup.calls[0][0] == [A, B, C]

    def test_get_returns_decode_order(self, loader):
        loader.load([A, B, C], Property("Has_text"), RequestOptions())

        assert loader.get(A, Property("Has_text")) == [Blob("a1"), Blob("a2")]
        assert loader.get(B, Property("Has_text")) == [Blob("b1")]
        assert loader.get(C, Property("Has_text")) == [Blob("c1")]

    def test_get_unknown_subject_is_empty(self, loader):
        loader.load([A], Property("Has_text"), RequestOptions())
        assert loader.get(WikiPage("Nobody"), Property("Has_text")) == []

    def test_get_unloaded_property_is_empty(self, loader):
        assert loader.get(A, Property("Has_text")) == []

    def test_is_cached(self, loader):
        prop = Property("Has_text")
        assert not loader.is_cached(prop)

        loader.load([A], prop, RequestOptions())

        assert loader.is_cached(prop)
        assert not loader.is_cached(Property("Has_number"))
        assert not loader.is_cached(Property("Has_text", inverse=True))

    def test_is_cached_with_no_values(self, loader):
        """A load without results still marks the property as cached."""
        prop = Property("Has_text")
        loader.load([WikiPage("Empty")], prop, RequestOptions())
        assert loader.is_cached(prop)

    def test_limit_not_applied_to_batch(self, loader, lookup):
        """The batched lookup always runs with exclude_limit."""
        options = RequestOptions(limit=1)
        loader.load([A, B, C], Property("Has_text"), options)

        assert lookup.calls[0][2].exclude_limit is True
        assert options.exclude_limit is False
        assert loader.get(B, Property("Has_text")) == [Blob("b1")]
        assert loader.get(C, Property("Has_text")) == [Blob("c1")]


class TestIdempotentLoad:
    """Repeated loads do not reach the store again."""

    def test_identical_load_is_noop(self, loader, lookup):
        prop = Property("Has_text")
        loader.load([A, B, C], prop, RequestOptions())
        loader.load([A, B, C], prop, RequestOptions())

        assert len(lookup.calls) == 1
        assert loader.load_stats.loads == 1
        assert loader.load_stats.skipped_loads == 1

    def test_different_subjects_reload(self, loader, lookup):
        prop = Property("Has_text")
        loader.load([A], prop, RequestOptions())
        loader.load([B], prop, RequestOptions())

        assert len(lookup.calls) == 2

    def test_chain_marker_changes_fingerprint(self, loader, lookup):
        prop = Property("Has_text")
        loader.load([A], prop, RequestOptions())
        loader.load([A], prop, RequestOptions(is_chain="Has_friend.Has_text"))

        assert len(lookup.calls) == 2

    def test_inverse_flag_changes_fingerprint(self, loader, lookup, inverse_lookup):
        loader.load([X], Property("Has_friend"), RequestOptions())
        loader.load([X], Property("Has_friend", inverse=True), RequestOptions())

        assert len(lookup.calls) == 1
        assert len(inverse_lookup.calls) == 1


class TestUniqueness:
    """Values are unique per subject and property."""

    def test_duplicate_stored_value(self, store, loader):
        prop = Property("Has_text")
        store.add_property_value(B, prop, Blob("b1"))

        loader.load([B], prop, RequestOptions())

        assert loader.get(B, prop) == [Blob("b1")]

    def test_overlapping_loads_merge(self, loader):
        prop = Property("Has_text")
        loader.load([A, B], prop, RequestOptions())
        loader.load([B, C], prop, RequestOptions())

        assert loader.get(A, prop) == [Blob("a1"), Blob("a2")]
        assert loader.get(B, prop) == [Blob("b1")]
        assert loader.get(C, prop) == [Blob("c1")]

    def test_later_load_keeps_existing_values(self, store, loader):
        prop = Property("Has_text")
        loader.load([A], prop, RequestOptions())

        store.add_property_value(A, prop, Blob("a3"))
        loader.load([A, B], prop, RequestOptions())

        assert loader.get(A, prop) == [Blob("a1"), Blob("a2"), Blob("a3")]


class TestDecodeFailure:
    """Undecodable rows are dropped without failing the batch."""

    def test_malformed_row_dropped(self, loader):
        prop = Property("Has_number")
        loader.load([A], prop, RequestOptions())

        assert loader.get(A, prop) == [Number(1.0), Number(2.0)]
        assert loader.load_stats.decode_failures == 1

    def test_dangling_page_reference_dropped(self, store, loader):
        prop = Property("Has_friend")
        store.add_raw_value(B, prop, (987654,))

        loader.load([A, B], prop, RequestOptions())

        assert loader.get(B, prop) == [X]
        assert loader.load_stats.decode_failures == 1


class TestUnresolved:
    """Missing tables and unresolvable subjects yield no values."""

    def test_unknown_property(self, loader, lookup):
        prop = Property("Undeclared")
        loader.load([A, B], prop, RequestOptions())

        assert loader.get(A, prop) == []
        assert loader.load_stats.unresolved_tables == 1
        assert lookup.calls == []

    def test_unknown_inverse_property(self, loader, inverse_lookup):
        prop = Property("Undeclared", inverse=True)
        loader.load([X], prop, RequestOptions())

        assert loader.get(X, prop) == []
        assert loader.load_stats.unresolved_tables == 1
        assert inverse_lookup.calls == []

    def test_inverse_of_non_page_property_skips_subjects(self, loader, inverse_lookup):
        prop = Property("Has_text", inverse=True)
        loader.load([A, B], prop, RequestOptions())

        assert loader.get(A, prop) == []
        assert loader.load_stats.skipped_subjects == 2
        assert inverse_lookup.calls == []

    def test_inverse_skips_non_page_items(self, loader, inverse_lookup):
        prop = Property("Has_friend", inverse=True)
        loader.load([X, Number(3)], prop, RequestOptions())

        assert loader.load_stats.skipped_subjects == 1
        assert len(inverse_lookup.calls) == 1
        assert len(inverse_lookup.calls[0]) == 1


class TestInverseLoad:
    """Inverse property loading."""

    def test_referencing_subjects(self, loader, inverse_lookup):
        prop = Property("Has_friend", inverse=True)
        loader.load([X, Y], prop, RequestOptions())

        assert len(inverse_lookup.calls) == 1
        assert loader.get(X, prop) == [A, B]
        assert loader.get(Y, prop) == [C]

    def test_forward_and_inverse_do_not_share_buckets(self, loader):
        forward = Property("Has_friend")
        inverse = Property("Has_friend", inverse=True)

        loader.load([A, X], forward, RequestOptions())
        loader.load([A, X], inverse, RequestOptions())

        assert loader.get(A, forward) == [X]
        assert loader.get(X, forward) == []
        assert loader.get(X, inverse) == [A, B]
        assert loader.get(A, inverse) == []


class TestChainLoad:
    """Chained printouts cache under their marker."""

    def test_chain_stored_under_marker(self, loader):
        options = RequestOptions(is_chain="Has_friend.Has_text")
        loader.load([A], Property("Has_text"), options)

        assert loader.get(A, Property("Has_friend.Has_text")) == [Blob("a1"), Blob("a2")]
        assert loader.get(A, Property("Has_text")) == []
        assert not loader.is_cached(Property("Has_text"))


class TestLinkBatch:
    """Link prefetching is advisory."""

    def test_flush_after_load(self, store, lookup, inverse_lookup):
        link_batch = LinkBatch(store.ids)
        loader = BulkLoader(store, lookup, inverse_lookup, link_batch)

        store.ids.clear_cache()
        loader.load([A, B], Property("Has_friend"), RequestOptions())

        assert link_batch.flushes == 1
        assert len(link_batch) == 0
        assert store.ids.is_cached(X)

    def test_results_independent_of_link_batch(self, store):
        prop = Property("Has_friend")
        with_batch = create_bulk_loader(store)
        without_batch = create_bulk_loader(store, NullLinkBatch())

        with_batch.load([A, B, C], prop, RequestOptions())
        without_batch.load([A, B, C], prop, RequestOptions())

        for subject in (A, B, C):
            assert with_batch.get(subject, prop) == without_batch.get(subject, prop)


class TestStats:

    def test_to_dict(self, loader):
        loader.load([A], Property("Has_number"), RequestOptions())
        stats = loader.stats()

        assert stats["loads"] == 1
        assert stats["decode_failures"] == 1
        assert stats["skipped_loads"] == 0


class TestIdCacheWarmUp:
    """Page values are resolved in the id cache after a forward load."""

    def test_page_values_warm_id_cache(self, store, loader):
        store.ids.clear_cache()
        loader.load([A, B], Property("Has_friend"), RequestOptions())

        assert store.ids.is_cached(X)
        assert not store.ids.is_cached(Y)

    def test_text_values_do_not_warm_id_cache(self, store, loader):
        store.ids.clear_cache()
        loader.load([A, B], Property("Has_text"), RequestOptions())

        assert not store.ids.is_cached(X)


class TestEmptyBatch:
    """Loads without page subjects do not reach the store."""

    def test_no_subjects(self, store, loader, lookup):
        prop = Property("Has_text")
        loader.load([], prop, RequestOptions())

        assert lookup.calls == []
        assert loader.load_stats.loads == 0
        assert store.query_stats.prefetch_queries == 0
        assert loader.is_cached(prop)

    def test_only_non_page_subjects(self, loader, lookup):
        loader.load([Number(1), Blob("x")], Property("Has_text"), RequestOptions())

        assert lookup.calls == []
        assert loader.load_stats.loads == 0


class TestSkippedLoadLinks:

    def test_repeated_load_queues_no_links(self, store, lookup, inverse_lookup):
        link_batch = LinkBatch(store.ids)
        loader = BulkLoader(store, lookup, inverse_lookup, link_batch)
        prop = Property("Has_text")

        loader.load([A, B], prop, RequestOptions())
        loader.load([A, B], prop, RequestOptions())

        assert len(link_batch) == 0
        assert link_batch.flushes == 1
