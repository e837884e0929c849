"""Asynchronous key-value backend over HTTP."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import aiohttp

from pysyncstate._codec import decode_text, encode_text
from pysyncstate.exceptions import SyncPayloadError, SyncStateError, SyncTransportError
from pysyncstate.synchronizer import BaseSynchronizer

_logger = logging.getLogger(__name__)

_WRITE_OK_STATUSES: frozenset[int] = frozenset({200, 201, 204})


class HttpSynchronizer(BaseSynchronizer):
    """Read and write values at ``<base_url>/<key>``.

    ``GET`` returns the stored JSON document (``404`` means nothing stored)
    and ``PUT`` replaces it. Usage::

        async with HttpSynchronizer("https://kv.example.com/state") as backend:
            async with SyncEngine(backend, "prefs", {"theme": "light"}) as engine:
                ...
    """

    server_compatible = True

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})
        self._timeout = timeout

    async def __aenter__(self) -> HttpSynchronizer:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def url_for(self, key: str) -> str:
        return f"{self._base_url}/{quote(key, safe='')}"

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise SyncStateError("HttpSynchronizer not initialized. Use 'async with HttpSynchronizer(...)'")
        return self._http

    async def read(self, key: str) -> Any:
        http = self._require_session()
        url = self.url_for(key)
        _logger.debug("GET %s", url)

        try:
            async with http.get(url, headers=self._headers) as resp:
                if resp.status == 404:
                    return None
                text = await resp.text()
                if resp.status != 200:
                    raise SyncTransportError(
                        f"HTTP {resp.status} reading {key!r}: {text[:200]}",
                        key=key,
                        status_code=resp.status,
                    )
        except SyncTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise SyncTransportError(f"Reading {key!r} failed: {exc}", key=key) from exc

        if not text.strip():
            return None
        try:
            return decode_text(text, key=key)
        except SyncPayloadError:
            _logger.debug("Ignoring malformed document key=%s", key, exc_info=True)
            return None

    async def write(self, key: str, value: Any) -> None:
        http = self._require_session()
        url = self.url_for(key)
        headers = {**self._headers, "content-type": "application/json; charset=UTF-8"}
        _logger.debug("PUT %s", url)

        try:
            async with http.put(url, data=encode_text(value), headers=headers) as resp:
                if resp.status not in _WRITE_OK_STATUSES:
                    text = await resp.text()
                    raise SyncTransportError(
                        f"HTTP {resp.status} writing {key!r}: {text[:200]}",
                        key=key,
                        status_code=resp.status,
                    )
        except SyncTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise SyncTransportError(f"Writing {key!r} failed: {exc}", key=key) from exc
