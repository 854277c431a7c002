"""Per-page text cache owned by the suggestion engine."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, int]


@dataclass(slots=True)
class CacheConfig:
    """Configuration for the page text cache.

    ``max_entries`` of 0 leaves the cache bounded only by liveness pruning.
    """

    max_entries: int = 0


class PageTextCache:
    """Extracted page text keyed by ``(widget_id, page_number)``."""

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or CacheConfig()
        self._entries: "OrderedDict[CacheKey, str]" = OrderedDict()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, widget_id: str, page_number: int) -> Optional[str]:
        return self._entries.get((widget_id, page_number))

    def put(self, widget_id: str, page_number: int, text: str) -> None:
        key = (widget_id, page_number)
        self._entries[key] = text
        self._entries.move_to_end(key)
        limit = self.config.max_entries
        while limit > 0 and len(self._entries) > limit:
            self._entries.popitem(last=False)

    def prune(self, live_widget_ids: Iterable[str]) -> int:
        """Drop entries of widgets that are no longer present."""

        live = set(live_widget_ids)
        stale = [key for key in self._entries if key[0] not in live]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Pruned %d cached pages of removed widgets", len(stale))
        return len(stale)

    def clear_widget(self, widget_id: str) -> int:
        if not isinstance(widget_id, str) or not widget_id.strip():
            return 0
        stale = [key for key in self._entries if key[0] == widget_id]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def reset(self) -> None:
        self._entries.clear()
