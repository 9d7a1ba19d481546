import logging
import threading
from typing import Dict, Iterator, Optional

from .exceptions import StateError, require_not_none

logger = logging.getLogger(__name__)


class IdCounterTable:
    """
    Per-id sequence counters shared by every context of one lineage.

    Counters start at 1. ``get_and_increment`` is a single locked
    read-modify-write, so sibling subtrees walked on different threads never
    hand out the same number for the same id.
    """

    def __init__(self, initial: Optional[Dict[str, int]] = None) -> None:
        self._counts: Dict[str, int] = dict(initial) if initial else {}
        self.lock = threading.Lock()

    def get_and_increment(self, id: str) -> int:
        require_not_none(id, "id")
        with self.lock:
            count = self._counts.get(id, 1)
            self._counts[id] = count + 1
        logger.debug("Sequence for id '%s' advanced to %d", id, count + 1)
        return count

    def next(self, id: str) -> int:
        require_not_none(id, "id")
        with self.lock:
            return self._counts.get(id, 1)

    def previous(self, id: str) -> int:
        require_not_none(id, "id")
        with self.lock:
            count = self._counts.get(id)
        if count is None:
            raise StateError("Cannot obtain previous ID count for ID \"%s\"" % id, id)
        return count - 1

    def snapshot(self) -> Dict[str, int]:
        with self.lock:
            return dict(self._counts)

    def __contains__(self, id: object) -> bool:
        with self.lock:
            return id in self._counts

    def __len__(self) -> int:
        return len(self._counts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return "IdCounterTable(%r)" % self.snapshot()
