"""
Scan queue protocol: ingest, poll-and-mark, capacity and retention, plus
the file, database and remote stores.
"""

import json
import threading

import httpx
import pytest

from scanpos.services.realtime_db import RealtimeDatabase
from scanpos.services.scan_queue import ScanQueue, build_scan_queue, build_scan_store
from scanpos.services.scan_store import (
    DatabaseScanStore,
    FileScanStore,
    MemoryScanStore,
    RemoteScanStore,
    ScanRecord,
)
from scanpos.validation import ConfigurationError, UpstreamError, ValidationError


class FakeClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return ScanQueue(MemoryScanStore(), max_size=100, retention_seconds=3600, clock=clock)


class TestIngest:
    def test_ingest_records_extracted_code_and_defaults(self, queue, clock):
        record = queue.ingest("PROD:RAP001|NAME:Rapidene")
        assert record.extracted_code == "RAP001"
        assert record.device_id == "UNKNOWN"
        assert record.processed is False
        assert record.created_at == clock.now
        assert record.id.startswith("scan_")
        assert queue.size() == 1

    def test_device_timestamp_does_not_replace_receive_time(self, queue, clock):
        record = queue.ingest("RAP001", device_id="SCANNER-1", timestamp=12345)
        assert record.created_at == clock.now
        assert record.device_id == "SCANNER-1"
        assert record.device_timestamp == 12345

    @pytest.mark.parametrize("timestamp,expected", [
        (None, None),
        ("12345", 12345),
        (12345.9, 12345),
        ("yesterday", None),
        (True, None),
        (float("inf"), None),
    ])
    def test_device_timestamp_normalized(self, queue, timestamp, expected):
        assert queue.ingest("RAP001", timestamp=timestamp).device_timestamp == expected

    @pytest.mark.parametrize("payload", [None, "", "   ", 42])
    def test_rejects_missing_or_blank_payload(self, queue, payload):
        with pytest.raises(ValidationError) as exc:
            queue.ingest(payload)
        assert exc.value.field == "payload"
        assert queue.size() == 0

    def test_rejects_payload_without_code(self, queue):
        with pytest.raises(ValidationError):
            queue.ingest("PROD:|NAME:nothing")
        assert queue.size() == 0

    def test_capacity_drops_oldest_first(self, clock):
        queue = ScanQueue(MemoryScanStore(), max_size=100, clock=clock)
        for i in range(101):
            queue.ingest(f"CODE-{i}")
        codes = [r.extracted_code for r in queue.snapshot()]
        assert len(codes) == 100
        assert codes[0] == "CODE-1"
        assert codes[-1] == "CODE-100"

    def test_capacity_applies_to_processed_records_too(self, clock):
        queue = ScanQueue(MemoryScanStore(), max_size=3, clock=clock)
        queue.ingest("A")
        queue.poll()
        for code in ("B", "C", "D"):
            queue.ingest(code)
        assert [r.extracted_code for r in queue.snapshot()] == ["B", "C", "D"]

    def test_ingest_observer_receives_record(self, queue):
        seen = []
        queue.on_ingest(seen.extend)
        record = queue.ingest("RAP001")
        assert seen == [record]


class TestPoll:
    def test_poll_returns_pending_and_marks_processed(self, queue, clock):
        queue.ingest("A")
        queue.ingest("B")

        first = queue.poll()
        assert [r.extracted_code for r in first] == ["A", "B"]
        # Delivered snapshot reflects the state before marking
        assert all(r.processed is False for r in first)

        stored = queue.snapshot()
        assert all(r.processed for r in stored)
        assert all(r.processed_at == clock.now for r in stored)

    def test_second_poll_is_empty(self, queue):
        queue.ingest("A")
        assert len(queue.poll()) == 1
        assert queue.poll() == []

    def test_scan_after_poll_is_delivered_next_time(self, queue):
        queue.ingest("A")
        queue.poll()
        queue.ingest("B")
        assert [r.extracted_code for r in queue.poll()] == ["B"]

    def test_poll_on_empty_queue(self, queue):
        assert queue.poll() == []
        assert queue.pending_count() == 0

    def test_processed_records_evicted_after_retention(self, queue, clock):
        queue.ingest("A")
        queue.poll()
        clock.advance(3601)
        queue.ingest("B")
        queue.poll()
        assert [r.extracted_code for r in queue.snapshot()] == ["B"]

    def test_retention_never_evicts_pending_records(self, queue, clock):
        queue.ingest("A")
        clock.advance(7200)
        delivered = queue.poll()
        assert [r.extracted_code for r in delivered] == ["A"]

    def test_processed_record_kept_within_retention(self, queue, clock):
        queue.ingest("A")
        queue.poll()
        clock.advance(3599)
        queue.poll()
        assert queue.size() == 1

    def test_concurrent_polls_partition_the_queue(self, clock):
        queue = ScanQueue(MemoryScanStore(), max_size=100, clock=clock)
        for i in range(50):
            queue.ingest(f"CODE-{i}")

        results = []
        results_lock = threading.Lock()

        def worker():
            got = queue.poll()
            with results_lock:
                results.extend(r.id for r in got)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 50
        assert len(set(results)) == 50

    def test_poll_observer_receives_delivered_batch(self, queue):
        seen = []
        queue.on_poll(seen.append)
        queue.ingest("A")
        queue.poll()
        queue.poll()
        assert [[r.extracted_code for r in batch] for batch in seen] == [["A"]]

    def test_clear_empties_queue(self, queue):
        queue.ingest("A")
        queue.clear()
        assert queue.size() == 0
        assert queue.poll() == []


class TestFileStore:
    def test_round_trip_through_file(self, tmp_path, clock):
        path = tmp_path / "queue" / "scanner_queue.json"
        queue = ScanQueue(FileScanStore(str(path)), clock=clock)
        queue.ingest("RAP001", device_id="S1", timestamp=99)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0]["deviceTimestamp"] == 99
        assert data[0]["extractedCode"] == "RAP001"
        assert data[0]["deviceId"] == "S1"
        assert data[0]["processed"] is False

        # A second queue over the same file sees the same records
        other = ScanQueue(FileScanStore(str(path)), clock=clock)
        assert [r.extracted_code for r in other.poll()] == ["RAP001"]
        assert queue.poll() == []

    def test_missing_file_is_empty_queue(self, tmp_path):
        assert FileScanStore(str(tmp_path / "nope.json")).load() == []

    def test_corrupt_file_is_empty_queue(self, tmp_path):
        path = tmp_path / "scanner_queue.json"
        path.write_text("{not json", encoding="utf-8")
        assert FileScanStore(str(path)).load() == []

    def test_clear_writes_empty_array(self, tmp_path):
        path = tmp_path / "scanner_queue.json"
        store = FileScanStore(str(path))
        store.save([ScanRecord(id="scan_1", payload="A", extracted_code="A")])
        store.clear()
        assert json.loads(path.read_text(encoding="utf-8")) == []


class TestDatabaseStore:
    def test_queue_over_database_rows(self, app, clock):
        queue = ScanQueue(DatabaseScanStore(), clock=clock)
        queue.ingest("A", device_id="S1", timestamp=42)
        queue.ingest("B")

        assert [r.extracted_code for r in queue.poll()] == ["A", "B"]
        stored = queue.snapshot()
        assert [r.device_timestamp for r in stored] == [42, None]
        assert [r.extracted_code for r in stored] == ["A", "B"]
        assert all(r.processed for r in stored)
        assert queue.poll() == []


class FakeRealtimeDB:
    """In-memory stand-in for the realtime database REST API."""

    def __init__(self, initial=None):
        self.nodes = {}
        if initial is not None:
            self.nodes["scanner_queue"] = initial
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.strip("/")
        assert path.endswith(".json")
        node = path[:-len(".json")]
        self.requests.append((request.method, node, dict(request.url.params)))

        if request.method == "GET":
            return httpx.Response(200, json=self.nodes.get(node))
        if request.method == "PUT":
            self.nodes[node] = json.loads(request.content)
            return httpx.Response(200, json=self.nodes[node])
        if request.method == "DELETE":
            self.nodes.pop(node, None)
            return httpx.Response(200, json=None)
        return httpx.Response(405)


class TestRemoteStore:
    def _store(self, fake, auth=None):
        database = RealtimeDatabase(
            "https://pos-demo.example-rtdb.test/",
            auth,
            transport=httpx.MockTransport(fake.handler),
        )
        return RemoteScanStore(database, "scanner_queue")

    def test_ingest_and_poll_through_rest(self, clock):
        fake = FakeRealtimeDB()
        queue = ScanQueue(self._store(fake, auth="secret"), clock=clock)
        queue.ingest("RAP001")

        assert fake.nodes["scanner_queue"][0]["extractedCode"] == "RAP001"
        assert all(params.get("auth") == "secret" for _, _, params in fake.requests)

        assert [r.extracted_code for r in queue.poll()] == ["RAP001"]
        assert fake.nodes["scanner_queue"][0]["processed"] is True

    def test_sparse_array_object_is_read_in_index_order(self):
        fake = FakeRealtimeDB(initial={
            "1": {"id": "scan_b", "payload": "B", "extractedCode": "B", "createdAt": 2},
            "0": {"id": "scan_a", "payload": "A", "extractedCode": "A", "createdAt": 1},
        })
        records = self._store(fake).load()
        assert [r.id for r in records] == ["scan_a", "scan_b"]

    def test_clear_deletes_node(self):
        fake = FakeRealtimeDB(initial=[{"id": "scan_a", "payload": "A", "extractedCode": "A"}])
        store = self._store(fake)
        store.clear()
        assert "scanner_queue" not in fake.nodes
        assert store.load() == []

    def test_http_error_becomes_upstream_error(self):
        database = RealtimeDatabase(
            "https://pos-demo.example-rtdb.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "denied"})),
        )
        with pytest.raises(UpstreamError) as exc:
            RemoteScanStore(database).load()
        assert exc.value.public_message == "Database request failed"

    def test_transport_error_becomes_upstream_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        database = RealtimeDatabase("https://pos-demo.example-rtdb.test", transport=httpx.MockTransport(boom))
        with pytest.raises(UpstreamError):
            database.get("scanner_queue")


class TestStoreSelection:
    def test_memory_backend(self):
        queue = build_scan_queue({"SCAN_QUEUE_BACKEND": "memory", "SCAN_QUEUE_MAX_SIZE": 5})
        assert queue.backend_name == "memory"
        assert queue.max_size == 5

    def test_remote_backend_requires_url(self):
        with pytest.raises(ConfigurationError):
            build_scan_store({"SCAN_QUEUE_BACKEND": "remote", "REALTIME_DB_URL": ""})

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            build_scan_store({"SCAN_QUEUE_BACKEND": "redis"})
