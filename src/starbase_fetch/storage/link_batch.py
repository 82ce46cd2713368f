"""
Link prefetching.

Collects the entity references a result will display and resolves their
ids in one go, so later per-item lookups hit the id cache. Purely a
performance hint.
"""

from abc import ABC, abstractmethod

from starbase_fetch.models import WikiPage
from starbase_fetch.storage.ids import EntityIdTable


class LinkPrefetcher(ABC):
    """Accumulates entity references and warms a cache on flush."""

    @abstractmethod
    def add(self, item) -> None:
        pass

    @abstractmethod
    def flush(self) -> None:
        pass


class LinkBatch(LinkPrefetcher):
    """Warms the EntityIdTable cache with every page added since the last flush."""

    def __init__(self, ids: EntityIdTable):
        self._ids = ids
        self._pending: dict[str, WikiPage] = {}
        self.flushes = 0
        self.warmed = 0

    def add(self, item) -> None:
        if isinstance(item, WikiPage):
            self._pending.setdefault(item.hash, item)

    def flush(self) -> None:
        if not self._pending:
            return
        self.warmed += self._ids.warm_up_cache(self._pending.values())
        self.flushes += 1
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)


class NullLinkBatch(LinkPrefetcher):
    """Does nothing."""

    def add(self, item) -> None:
        pass

    def flush(self) -> None:
        pass
