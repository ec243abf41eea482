# Overview: Scan records and the swappable stores that persist the scan queue.

"""
Scan queue persistence.

The queue is small (bounded by SCAN_QUEUE_MAX_SIZE) so every store keeps the
same contract: `load()` returns the full ordered list and `save()` rewrites
it wholesale. Locking and queue semantics live in ScanQueue, not here.
"""

from __future__ import annotations

import io
import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, replace
from typing import Optional

from ..extensions import db
from ..models import ScanRecordRow
from ..validation import UpstreamError
from .realtime_db import RealtimeDatabase


logger = logging.getLogger(__name__)

DEFAULT_DEVICE_ID = "UNKNOWN"


def new_scan_id() -> str:
    return f"scan_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ScanRecord:
    id: str
    payload: str
    extracted_code: str
    device_id: str = DEFAULT_DEVICE_ID
    created_at: int = 0
    processed: bool = False
    processed_at: Optional[int] = None
    device_timestamp: Optional[int] = None

    def mark_processed(self, at: int) -> "ScanRecord":
        return replace(self, processed=True, processed_at=at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payload": self.payload,
            "extractedCode": self.extracted_code,
            "deviceId": self.device_id,
            "createdAt": self.created_at,
            "processed": self.processed,
            "processedAt": self.processed_at,
            "deviceTimestamp": self.device_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScanRecord":
        return cls(
            id=str(data["id"]),
            payload=str(data.get("payload", "")),
            extracted_code=str(data.get("extractedCode", "")),
            device_id=str(data.get("deviceId") or DEFAULT_DEVICE_ID),
            created_at=int(data.get("createdAt") or 0),
            processed=bool(data.get("processed", False)),
            processed_at=int(data["processedAt"]) if data.get("processedAt") is not None else None,
            device_timestamp=int(data["deviceTimestamp"]) if data.get("deviceTimestamp") is not None else None,
        )


class ScanQueueStore:
    """Persistence boundary for the scan queue."""

    name = "abstract"

    def load(self) -> list[ScanRecord]:
        raise NotImplementedError

    def save(self, records: list[ScanRecord]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        self.save([])


class MemoryScanStore(ScanQueueStore):
    """Process-local store. Contents are lost on restart."""

    name = "memory"

    def __init__(self):
        self._records: list[ScanRecord] = []

    def load(self) -> list[ScanRecord]:
        return list(self._records)

    def save(self, records: list[ScanRecord]) -> None:
        self._records = list(records)


class FileScanStore(ScanQueueStore):
    """
    Single JSON array on disk. Writes go to a temp file in the same
    directory followed by os.replace(), so readers never see a torn file.
    """

    name = "file"

    def __init__(self, path: str):
        self.path = path

    def load(self) -> list[ScanRecord]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as exc:
            raise UpstreamError(f"Cannot read scan queue file {self.path}: {exc}",
                                public_message="Scan queue unavailable") from exc
        if not content.strip():
            return []
        try:
            raw = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Scan queue file %s is not valid JSON; starting empty", self.path)
            return []
        if not isinstance(raw, list):
            return []
        return [ScanRecord.from_dict(item) for item in raw if isinstance(item, dict)]

    def save(self, records: list[ScanRecord]) -> None:
        text = json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2)
        d = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(d, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=d)
            try:
                with io.open(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(text)
                os.replace(tmp, self.path)
            finally:
                if os.path.exists(tmp):
                    os.remove(tmp)
        except OSError as exc:
            raise UpstreamError(f"Cannot write scan queue file {self.path}: {exc}",
                                public_message="Scan queue unavailable") from exc


class DatabaseScanStore(ScanQueueStore):
    """Rows in `scan_records`; needs an application context."""

    name = "database"

    def load(self) -> list[ScanRecord]:
        rows = db.session.query(ScanRecordRow).order_by(ScanRecordRow.seq).all()
        return [
            ScanRecord(
                id=row.id,
                payload=row.payload,
                extracted_code=row.extracted_code,
                device_id=row.device_id,
                created_at=row.created_at,
                processed=row.processed,
                processed_at=row.processed_at,
                device_timestamp=row.device_timestamp,
            )
            for row in rows
        ]

    def save(self, records: list[ScanRecord]) -> None:
        try:
            db.session.query(ScanRecordRow).delete()
            for record in records:
                db.session.add(ScanRecordRow(
                    id=record.id,
                    payload=record.payload,
                    extracted_code=record.extracted_code,
                    device_id=record.device_id,
                    created_at=record.created_at,
                    processed=record.processed,
                    processed_at=record.processed_at,
                    device_timestamp=record.device_timestamp,
                ))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


class RemoteScanStore(ScanQueueStore):
    """Queue kept as one array node in the hosted realtime database."""

    name = "remote"

    def __init__(self, database: RealtimeDatabase, path: str = "scanner_queue"):
        self.database = database
        self.path = path

    def load(self) -> list[ScanRecord]:
        raw = self.database.get(self.path)
        if raw is None:
            return []
        # The realtime DB returns sparse arrays as objects keyed by index
        if isinstance(raw, dict):
            keys = sorted((k for k in raw if str(k).isdigit()), key=int)
            raw = [raw[k] for k in keys]
        return [ScanRecord.from_dict(item) for item in raw if isinstance(item, dict)]

    def save(self, records: list[ScanRecord]) -> None:
        self.database.put(self.path, [r.to_dict() for r in records])

    def clear(self) -> None:
        self.database.delete(self.path)
