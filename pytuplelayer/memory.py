"""In-memory ordered key-value store.

Implements the byte-keyed transactional interface the tuple layer is
written for (``get``, ``set``, ``clear``, ``get_range`` and ``commit``)
with keys ordered by their raw bytes, so that range scans over packed
keys can be exercised without a database.
"""

from bisect import bisect_left, insort
import logging
from threading import Lock


logger = logging.getLogger(__name__)


class TransactionError(Exception):
    """Raised when a transaction is used after it has been committed."""
    pass


def check_bytes(obj, what):
    if not isinstance(obj, bytes):
        raise TypeError("%s must be bytes, not %s" % (what, type(obj).__name__))


class MemoryStore(object):

    def __init__(self):
        self._keys = []
        self._values = {}
        self._lock = Lock()

    def transaction(self):
        return MemoryTransaction(self)

    def snapshot(self, begin, end):
        """Return the committed ``(key, value)`` pairs with
        ``begin <= key < end`` in key order."""
        with self._lock:
            lo = bisect_left(self._keys, begin)
            hi = bisect_left(self._keys, end)
            return [(k, self._values[k]) for k in self._keys[lo:hi]]

    def get(self, key):
        with self._lock:
            return self._values.get(key)

    def apply(self, writes):
        """Apply a mapping of key to value, where a value of None clears
        the key."""
        with self._lock:
            for key, value in writes.items():
                if value is None:
                    if key in self._values:
                        del self._values[key]
                        del self._keys[bisect_left(self._keys, key)]
                else:
                    if key not in self._values:
                        insort(self._keys, key)
                    self._values[key] = value

    def __len__(self):
        with self._lock:
            return len(self._keys)


class MemoryTransaction(object):
    """Buffers writes until ``commit``. Reads see the transaction's own
    writes on top of the committed state."""

    def __init__(self, store):
        self._store = store
        self._writes = {}
        self._committed = False

    def _check_open(self):
        if self._committed:
            raise TransactionError("Transaction has already been committed.")

    def get(self, key):
        check_bytes(key, "Key")
        self._check_open()
        if key in self._writes:
            return self._writes[key]
        return self._store.get(key)

    def set(self, key, value):
        check_bytes(key, "Key")
        check_bytes(value, "Value")
        self._check_open()
        self._writes[key] = value

    def clear(self, key):
        check_bytes(key, "Key")
        self._check_open()
        self._writes[key] = None

    def get_range(self, begin, end):
        """Return the ``(key, value)`` pairs with ``begin <= key < end``
        in key order."""
        check_bytes(begin, "Begin key")
        check_bytes(end, "End key")
        self._check_open()
        merged = dict(self._store.snapshot(begin, end))
        for key, value in self._writes.items():
            if begin <= key < end:
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
        return sorted(merged.items())

    def commit(self):
        self._check_open()
        self._store.apply(self._writes)
        self._committed = True
        logger.debug("Committed %d writes", len(self._writes))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None and not self._committed:
            self.commit()
