# Overview: Thin REST wrapper around the hosted realtime database.

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..validation import ConfigurationError, UpstreamError


logger = logging.getLogger(__name__)


class RealtimeDatabase:
    """
    Realtime database over its REST interface: every node is addressable as
    `<base_url>/<path>.json`, reads are GET, whole-node writes are PUT.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not base_url:
            raise ConfigurationError("REALTIME_DB_URL is required for the remote store")
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token or None
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    def _params(self) -> dict:
        return {"auth": self.auth_token} if self.auth_token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, self._url(path), params=self._params(), **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Realtime DB %s %s rejected: %s", method, path, exc.response.status_code)
            raise UpstreamError(
                f"Realtime DB {method} {path} failed with HTTP {exc.response.status_code}",
                public_message="Database request failed",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Realtime DB %s %s unreachable: %s", method, path, exc)
            raise UpstreamError(
                f"Realtime DB {method} {path} unreachable: {exc}",
                public_message="Database unavailable",
            ) from exc
        if not response.content:
            return None
        return response.json()

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def put(self, path: str, value: Any) -> Any:
        return self._request("PUT", path, json=value)

    def delete(self, path: str) -> None:
        self._request("DELETE", path)

    def close(self) -> None:
        self._client.close()
