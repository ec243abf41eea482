# Overview: Scan ingestion and polling over a pluggable queue store.

"""
Scan queue protocol.

Producers (scanner devices) call ingest(); the POS client calls poll() on a
fixed interval and gets every record that has not been handed out yet.

Invariants:
- A record moves created(unprocessed) -> processed exactly once.
- poll() reads the unprocessed set and marks it processed under the queue
  lock, so concurrent polls partition the set without overlap.
- The queue never holds more than max_size records; ingest drops the oldest
  records first, processed or not.
- Retention eviction (on poll) only ever removes processed records.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Optional

from ..time_utils import now_millis
from ..validation import ConfigurationError, ValidationError
from .code_extractor import resolve
from .realtime_db import RealtimeDatabase
from .scan_store import (
    DEFAULT_DEVICE_ID,
    DatabaseScanStore,
    FileScanStore,
    MemoryScanStore,
    RemoteScanStore,
    ScanQueueStore,
    ScanRecord,
    new_scan_id,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100
DEFAULT_RETENTION_SECONDS = 3600

ScanObserver = Callable[[list[ScanRecord]], None]


def device_timestamp(value) -> Optional[int]:
    """Device clock reading in epoch millis, or None when absent or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    logger.debug("Ignoring device timestamp %r", value)
    return None


class ScanQueue:
    def __init__(
        self,
        store: ScanQueueStore,
        *,
        max_size: int = DEFAULT_MAX_SIZE,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], int] = now_millis,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.store = store
        self.max_size = max_size
        self.retention_ms = retention_seconds * 1000
        self.clock = clock
        self._lock = threading.RLock()
        self._ingest_observers: list[ScanObserver] = []
        self._poll_observers: list[ScanObserver] = []

    @property
    def backend_name(self) -> str:
        return self.store.name

    def on_ingest(self, callback: ScanObserver) -> None:
        self._ingest_observers.append(callback)

    def on_poll(self, callback: ScanObserver) -> None:
        self._poll_observers.append(callback)

    def ingest(
        self,
        payload,
        device_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> ScanRecord:
        """Queue one device scan. Returns the created record."""
        if payload is None or not isinstance(payload, str) or not payload.strip():
            raise ValidationError("QR code payload is required", field="payload")

        label_format, code = resolve(payload)
        if not code:
            raise ValidationError("Could not extract a product code from the payload", field="payload")

        device = (device_id or "").strip() or DEFAULT_DEVICE_ID
        device_ts = device_timestamp(timestamp)

        with self._lock:
            record = ScanRecord(
                id=new_scan_id(),
                payload=payload,
                extracted_code=code,
                device_id=device,
                created_at=self.clock(),
                device_timestamp=device_ts,
            )
            records = self.store.load()
            records.append(record)
            if len(records) > self.max_size:
                dropped = len(records) - self.max_size
                records = records[dropped:]
                logger.info("Scan queue full; dropped %d oldest record(s)", dropped)
            self.store.save(records)

        logger.info(
            "Queued scan %s code=%s format=%s device=%s device_ts=%s",
            record.id, code, label_format, device, device_ts,
        )
        for callback in self._ingest_observers:
            callback([record])
        return record

    def poll(self) -> list[ScanRecord]:
        """
        Hand out every unprocessed record and mark it processed.
        Records ingested after the read are left for the next poll.
        """
        with self._lock:
            now = self.clock()
            records = self.store.load()
            kept = [r for r in records if not self._expired(r, now)]
            pending = [r for r in kept if not r.processed]

            if not pending:
                if len(kept) != len(records):
                    self.store.save(kept)
                return []

            claimed = {r.id for r in pending}
            self.store.save([
                r.mark_processed(now) if r.id in claimed else r
                for r in kept
            ])

        logger.info("Delivered %d scan(s) to poller", len(pending))
        for callback in self._poll_observers:
            callback(list(pending))
        return pending

    def clear(self) -> None:
        with self._lock:
            self.store.clear()
        logger.info("Scan queue cleared")

    def snapshot(self) -> list[ScanRecord]:
        with self._lock:
            return self.store.load()

    def size(self) -> int:
        return len(self.snapshot())

    def pending_count(self) -> int:
        return sum(1 for r in self.snapshot() if not r.processed)

    def _expired(self, record: ScanRecord, now: int) -> bool:
        if not record.processed:
            return False
        reference = record.processed_at if record.processed_at is not None else record.created_at
        return now - reference > self.retention_ms


def build_scan_store(config, transport=None) -> ScanQueueStore:
    """Store selected by SCAN_QUEUE_BACKEND."""
    backend = (config.get("SCAN_QUEUE_BACKEND") or "file").lower()
    if backend == "memory":
        return MemoryScanStore()
    if backend == "file":
        return FileScanStore(config.get("SCAN_QUEUE_FILE") or "queue/scanner_queue.json")
    if backend == "database":
        return DatabaseScanStore()
    if backend == "remote":
        database = RealtimeDatabase(
            config.get("REALTIME_DB_URL") or "",
            config.get("REALTIME_DB_AUTH") or None,
            timeout=float(config.get("HTTP_TIMEOUT") or 10),
            transport=transport,
        )
        return RemoteScanStore(database, config.get("REALTIME_DB_QUEUE_PATH") or "scanner_queue")
    raise ConfigurationError(f"Unknown SCAN_QUEUE_BACKEND: {backend}")


def build_scan_queue(config, transport=None) -> ScanQueue:
    return ScanQueue(
        build_scan_store(config, transport=transport),
        max_size=int(config.get("SCAN_QUEUE_MAX_SIZE") or DEFAULT_MAX_SIZE),
        retention_seconds=int(config.get("SCAN_RETENTION_SECONDS") or DEFAULT_RETENTION_SECONDS),
    )
