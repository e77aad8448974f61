from __future__ import annotations

import logging
import threading
import zlib
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import TransientStoreError


logger = logging.getLogger(__name__)
_registry_lock = threading.Lock()
_entries: dict[str, '_LockEntry'] = {}


class _LockEntry:
    __slots__ = ('lock', 'holders')

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


def _lock_key(scope: str, key: int) -> str:
    return f'{scope}:{int(key)}'


@contextmanager
def keyed_lock(scope: str, key: int, *, timeout: float | None = None) -> Iterator[None]:
    """Process-local mutual exclusion for one (scope, key) pair, e.g. ('order', 42)."""
    name = _lock_key(scope, key)
    wait = settings.lock_timeout_seconds if timeout is None else timeout
    with _registry_lock:
        entry = _entries.get(name)
        if entry is None:
            entry = _LockEntry()
            _entries[name] = entry
        entry.holders += 1

    acquired = entry.lock.acquire(timeout=max(0.0, float(wait)))
    try:
        if not acquired:
            logger.warning('keyed_lock_timeout', extra={'key': name, 'timeout': wait})
            raise TransientStoreError('Resource is busy, retry later', resource=scope)
        yield
    finally:
        if acquired:
            entry.lock.release()
        with _registry_lock:
            entry.holders -= 1
            if entry.holders <= 0:
                _entries.pop(name, None)


def acquire_database_lock(db: Session, scope: str, key: int) -> None:
    """Transaction-scoped advisory lock; released by commit or rollback.

    Only PostgreSQL offers one. Other backends rely on ``keyed_lock`` and row locks.
    """
    if db.get_bind().dialect.name != 'postgresql':
        return
    scope_id = zlib.crc32(scope.encode('utf-8')) & 0x7FFFFFFF
    db.execute(
        text('SELECT pg_advisory_xact_lock(:scope_id, :key)'),
        {'scope_id': scope_id, 'key': int(key) & 0x7FFFFFFF},
    )
