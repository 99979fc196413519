"""
Duplicate Filter

Bounded record of comment ids already delivered to the receiver. Oldest
ids are evicted first once the capacity is exceeded, which bounds memory
over long sessions.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from relay.config import settings
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="delivery")


class DuplicateFilter:
    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size if max_size is not None else settings.duplicate_filter_max_size
        if self.max_size <= 0:
            raise ValueError(f"max_size must be positive, got {self.max_size}")
        # Insertion-ordered set; values are unused
        self._sent_ids: "OrderedDict[str, None]" = OrderedDict()

    def is_duplicate(self, comment_id: str) -> bool:
        return comment_id in self._sent_ids

    def mark_sent(self, comment_id: str) -> None:
        """Record ``comment_id``. Re-marking keeps its original position."""
        if comment_id in self._sent_ids:
            return
        self._sent_ids[comment_id] = None
        if len(self._sent_ids) > self.max_size:
            evicted, _ = self._sent_ids.popitem(last=False)
            logger.debug(f"Duplicate filter full; evicted {evicted}")

    def size(self) -> int:
        return len(self._sent_ids)

    def __len__(self) -> int:
        return len(self._sent_ids)

    def __contains__(self, comment_id: object) -> bool:
        return comment_id in self._sent_ids
