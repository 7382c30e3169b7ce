from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from .models import ImageSource, ItemStatus, QueueItem

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"processing"}),
    "processing": frozenset({"completed", "error"}),
    "completed": frozenset(),
    "error": frozenset(),
}


class ProcessingQueue:
    """
    Ordered collection of work items.

    All mutations are synchronous, so on a single event loop every status
    change is applied atomically with respect to other items. Readers get
    copies; nobody outside this class holds a live reference to the list.
    """

    def __init__(self) -> None:
        self._items: List[QueueItem] = []

    def add(self, sources: Iterable[ImageSource]) -> List[QueueItem]:
        new_items = [QueueItem(id=uuid4().hex, source=source) for source in sources]
        self._items.extend(new_items)
        if new_items:
            logger.info("Queued %d item(s); queue size is now %d", len(new_items), len(self._items))
        return new_items

    def remove(self, item_id: str) -> bool:
        item = self.get(item_id)
        if item is None or item.status != "pending":
            return False
        self._items = [i for i in self._items if i.id != item_id]
        return True

    def clear(self) -> None:
        self._items = []

    def get(self, item_id: str) -> Optional[QueueItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def items(self) -> List[QueueItem]:
        return [
            QueueItem(id=i.id, source=i.source, status=i.status, error=i.error)
            for i in self._items
        ]

    def pending(self) -> List[QueueItem]:
        return [i for i in self._items if i.status == "pending"]

    def transition(self, item_id: str, status: ItemStatus, error: Optional[str] = None) -> bool:
        """
        Move an item to ``status``.

        Returns False (and changes nothing) when the item is gone or the move
        is not allowed, e.g. out of a terminal state.
        """
        item = self.get(item_id)
        if item is None:
            logger.debug("Ignoring %s transition for missing item %s", status, item_id)
            return False
        if status not in _ALLOWED_TRANSITIONS[item.status]:
            logger.warning("Refusing transition %s -> %s for item %s", item.status, status, item_id)
            return False
        item.status = status
        item.error = (error or "Unknown error") if status == "error" else None
        return True

    def counts(self) -> Dict[str, int]:
        counts = {"pending": 0, "processing": 0, "completed": 0, "error": 0}
        for item in self._items:
            counts[item.status] += 1
        return counts

    @property
    def processed_count(self) -> int:
        counts = self.counts()
        return counts["completed"] + counts["error"]

    def __len__(self) -> int:
        return len(self._items)
