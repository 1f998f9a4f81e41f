"""Per-compound-code locks for serialising ledger cascades.

Belt create/update/delete revert and replay consumption for every later
belt that shares a compound code. Two such cascades touching the same code
must not interleave, so every belt mutation holds the locks for all of the
codes it touches. Locks are re-entrant and acquired in sorted order.

The registry is process-wide; multi-process deployments still rely on the
conditional batch updates and the unique batch date for safety.

Usage:
    from src.services.compound_locks import compound_locks

    with compound_locks(["nk5", "sk2"]):
        ...
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List

_registry_lock = threading.Lock()
_locks: Dict[str, threading.RLock] = {}


def _lock_for(compound_code: str) -> threading.RLock:
    with _registry_lock:
        lock = _locks.get(compound_code)
        if lock is None:
            lock = threading.RLock()
            _locks[compound_code] = lock
        return lock


@contextmanager
def compound_locks(compound_codes: Iterable[str]) -> Iterator[List[str]]:
    """
    Hold the locks for a set of compound codes.

    Args:
        compound_codes: Codes to lock; None and duplicates are ignored

    Yields:
        The sorted list of codes that are held
    """
    codes = sorted({code for code in compound_codes if code})
    acquired: List[threading.RLock] = []
    try:
        for code in codes:
            lock = _lock_for(code)
            lock.acquire()
            acquired.append(lock)
        yield codes
    finally:
        for lock in reversed(acquired):
            lock.release()
