from __future__ import annotations

from collections import OrderedDict
from types import MappingProxyType
from typing import Mapping

from listing_resolver.models.listing import ListingRecord


class ListingCache:
    """Process-lifetime map from listing URL to the record extracted for it.

    Keys are the caller's URL text as-is. With ``max_entries`` left at 0 the cache
    never evicts; a positive value turns it into an LRU of that size. Every
    operation completes without awaiting, so concurrent coroutines on one event
    loop cannot interleave inside it.
    """

    def __init__(self, max_entries: int = 0) -> None:
        self._entries: OrderedDict[str, ListingRecord] = OrderedDict()
        self._max_entries = max(0, max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def get(self, url: str) -> ListingRecord | None:
        record = self._entries.get(url)
        if record is not None and self._max_entries:
            self._entries.move_to_end(url)
        return record

    def put(self, url: str, record: ListingRecord) -> None:
        self._entries[url] = record
        self._entries.move_to_end(url)
        if self._max_entries:
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> int:
        previous_size = len(self._entries)
        self._entries.clear()
        return previous_size

    def snapshot(self) -> Mapping[str, ListingRecord]:
        return MappingProxyType(dict(self._entries))
