"""Durable writes for owned collections, synchronous or deferred.

A CollectionWriter sits between an owner and its KeyValueStore key. The
owner builds a snapshot of its whole collection while holding its lock
and hands it to write():

- SYNCHRONOUS: the snapshot is written before write() returns. Failure
  (I/O error or timeout) is reported back as an error string so the
  owner can roll back its in-memory change.
- DEFERRED: the snapshot is queued on the single writer thread and
  write() returns immediately. Failure is logged and marks the writer
  degraded; the in-memory change stays.

A synchronous write that times out is cancelled if it has not started.
If it is already running it may still land, so after rolling back the
owner hands the restored snapshot to restore(), which queues it behind
the late write.

All writes for a PersistenceQueue run on one thread, so snapshots land
in submission order. Every snapshot is a full overwrite, so a later
successful write heals an earlier failed or timed-out one.
"""

from __future__ import annotations

import concurrent.futures
import threading
from typing import Optional

from connecto.log import get_logger
from connecto.persistence.store import KeyValueStore, Records
from connecto.policy import DurabilityMode, DurabilityPolicy


log = get_logger("persistence")


class PersistenceQueue:
    """Single-threaded executor shared by all writers of a service."""

    def __init__(self) -> None:
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="connecto-writer",
        )
        self._closed = False

    def submit(self, store: KeyValueStore, key: str, records: Records) -> concurrent.futures.Future:
        if self._closed:
            raise RuntimeError("Persistence queue is closed")
        return self._executor.submit(store.save, key, records)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until everything submitted so far has been attempted."""
        if self._closed:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._executor.shutdown(wait=True)


class CollectionWriter:
    """Writes one owner's collection under one key."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        durability: Optional[DurabilityPolicy] = None,
        queue: Optional[PersistenceQueue] = None,
    ) -> None:
        self._store = store
        self._key = key
        self._durability = durability or DurabilityPolicy()
        if self._durability.mode == DurabilityMode.DEFERRED and queue is None:
            raise ValueError("Deferred durability needs a PersistenceQueue")
        self._queue = queue
        self._degraded = threading.Event()
        self._late_write = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def degraded(self) -> bool:
        """True once a deferred write has failed."""
        return self._degraded.is_set()

    def load(self) -> Optional[Records]:
        return self._store.load(self._key)

    def write(self, records: Records) -> Optional[str]:
        """Persist a full snapshot. Returns an error string or None."""
        if self._durability.mode == DurabilityMode.DEFERRED:
            self._write_deferred(records)
            return None
        return self._write_synchronous(records)

    def flush(self, timeout: Optional[float] = None) -> None:
        if self._queue is not None:
            self._queue.flush(timeout)

    def _write_synchronous(self, records: Records) -> Optional[str]:
        if self._queue is None:
            try:
                self._store.save(self._key, records)
                return None
            except (OSError, ValueError, TypeError) as e:
                log.error("Write to %s failed: %s", self._key, e)
                return f"Persistence failure: {e}"

        timeout = self._durability.write_timeout_seconds
        try:
            future = self._queue.submit(self._store, self._key, records)
            future.result(timeout=timeout)
            return None
        except concurrent.futures.TimeoutError:
            log.error("Write to %s timed out after %.1fs", self._key, timeout)
            if not future.cancel():
                self._late_write = True
            return f"Persistence failure: write to {self._key} timed out"
        except (OSError, ValueError, TypeError, RuntimeError) as e:
            log.error("Write to %s failed: %s", self._key, e)
            return f"Persistence failure: {e}"

    def restore(self, records: Records) -> None:
        """Queue a rolled-back snapshot behind a timed-out write still running."""
        if not self._late_write:
            return
        self._late_write = False
        log.warning("Re-queueing restored %s behind a late write", self._key)
        self._write_deferred(records)

    def _write_deferred(self, records: Records) -> None:
        try:
            future = self._queue.submit(self._store, self._key, records)
        except RuntimeError as e:
            self._mark_degraded(e)
            return

        def _on_done(done: concurrent.futures.Future) -> None:
            exc = done.exception()
            if exc is not None:
                self._mark_degraded(exc)

        future.add_done_callback(_on_done)

    def _mark_degraded(self, exc: BaseException) -> None:
        self._degraded.set()
        log.error(
            "Deferred write to %s failed: %s; in-memory state kept, store is stale",
            self._key, exc,
        )
