# Overview: HTTP client for the scan API and the POS-side fixed-interval poller.

"""
Scanner API client.

ScannerClient wraps the /api/scan endpoints for scanner devices and POS
terminals. ScanPoller is the POS side of the protocol: while an operator is
signed in it polls on a fixed interval and hands each scan to a handler,
one at a time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import httpx

from .decorators import SESSION_HEADER
from .services.scan_store import ScanRecord
from .validation import UpstreamError


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0

ScanHandler = Callable[[ScanRecord], Any]


class ScannerClient:
    def __init__(
        self,
        base_url: str,
        *,
        session_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {url} failed: {exc}",
                                public_message="Scan service unreachable") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            raise UpstreamError(
                f"{method} {url} returned HTTP {response.status_code}: {body.get('error') or response.text[:200]}",
                public_message=body.get("error") or "Scan service error",
            )
        return body

    def test_connection(self) -> dict:
        return self._request("GET", "/api/test")

    def submit_scan(self, payload: str, device_id: Optional[str] = None, timestamp: Optional[int] = None) -> dict:
        body: dict = {"payload": payload}
        if device_id is not None:
            body["deviceId"] = device_id
        if timestamp is not None:
            body["timestamp"] = timestamp
        return self._request("POST", "/api/scan", json=body)

    def poll_scans(self) -> list[ScanRecord]:
        body = self._request("GET", "/api/scan")
        return [ScanRecord.from_dict(item) for item in body.get("scans") or []]

    def clear_scans(self) -> None:
        self._request("DELETE", "/api/scan")

    def close(self) -> None:
        self.client.close()


class ScanPoller:
    """
    Fixed-interval poll loop, started on sign-in and stopped on sign-out.

    Every start() opens a new generation. A poll response is only handled if
    its generation is still current, so a request that was in flight when
    stop() ran is dropped instead of reaching the handler. Scans are handled
    strictly one after another, never concurrently with each other.
    """

    def __init__(self, client: ScannerClient, handler: ScanHandler, interval: float = DEFAULT_POLL_INTERVAL):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.client = client
        self.handler = handler
        self.interval = interval
        self._generation = 0
        self._state_lock = threading.Lock()
        # Reentrant so a handler may call stop()
        self._handle_lock = threading.RLock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None

    @property
    def generation(self) -> int:
        return self._generation

    def start(self) -> None:
        with self._state_lock:
            if self._thread is not None:
                return
            self._generation += 1
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._generation, self._stop_event),
                name=f"scan-poller-{self._generation}",
                daemon=True,
            )
            self._thread.start()
        logger.info("Scan polling started (every %.1fs)", self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Once this returns, no scan from an earlier generation reaches the handler."""
        with self._handle_lock, self._state_lock:
            thread, event = self._thread, self._stop_event
            self._generation += 1
            self._thread = None
            self._stop_event = None
        if event is not None:
            event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.interval * 5)
        logger.info("Scan polling stopped")

    def poll_once(self) -> int:
        """Run one poll in the current generation. Returns the number of scans handled."""
        return self._poll(self._generation)

    def _poll(self, generation: int) -> int:
        try:
            scans = self.client.poll_scans()
        except UpstreamError as exc:
            logger.warning("Scan poll failed: %s", exc)
            return 0

        if generation != self._generation:
            if scans:
                logger.info("Discarding %d scan(s) polled before sign-out", len(scans))
            return 0

        handled = 0
        for scan in scans:
            with self._handle_lock:
                if generation != self._generation:
                    break
                try:
                    self.handler(scan)
                    handled += 1
                except Exception:
                    logger.exception("Scan handler failed for %s (%s)", scan.id, scan.extracted_code)
        return handled

    def _run(self, generation: int, stop_event: threading.Event) -> None:
        while not stop_event.is_set() and generation == self._generation:
            self._poll(generation)
            stop_event.wait(self.interval)
