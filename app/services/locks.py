"""
In-process mutex keyed by entity.

Serializes read-modify-write on one ledger or milestone within a worker
process. Across processes the row lock taken by Store.get(lock=True) does
the same job on databases that support SELECT ... FOR UPDATE.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple


class KeyedLocks:
    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders+waiters]
        self._entries: Dict[Tuple[str, str], List] = {}

    @contextmanager
    def hold(self, kind: str, entity_id) -> Iterator[None]:
        key = (kind, str(entity_id))
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


_locks = KeyedLocks()


def entity_lock(kind: str, entity_id):
    """``with entity_lock("milestone", m_id): ...``"""
    return _locks.hold(kind, entity_id)
