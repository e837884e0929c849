"""Cookie jar backend.

Values are JSON encoded and percent-quoted into a single cookie per key.
Writes are announced on the ``ck-sync-<key>`` channel of an optional
broadcast bus so other engines bound to the same key pick them up.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from http.cookies import CookieError, SimpleCookie
from typing import Any, Literal
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field

from pysyncstate._codec import decode_text, encode_text
from pysyncstate._snapshot import snapshot
from pysyncstate.bus.local import BroadcastBus, channel_name
from pysyncstate.exceptions import SyncPayloadError
from pysyncstate.synchronizer import BaseSynchronizer, RemoteCallback

_logger = logging.getLogger(__name__)

_CHANNEL_KIND = "ck"
# Browsers reject cookies larger than this (name + value + attributes).
_MAX_COOKIE_BYTES = 4096


class CookieOptions(BaseModel):
    """Attributes applied to every cookie written by :class:`CookieSynchronizer`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str | None = "/"
    domain: str | None = None
    max_age: int | None = Field(default=None, description="Lifetime in seconds")
    expires: datetime | None = None
    same_site: Literal["strict", "lax", "none"] | None = "lax"
    secure: bool = False

    def apply(self, morsel: Any) -> None:
        if self.path:
            morsel["path"] = self.path
        if self.domain:
            morsel["domain"] = self.domain
        if self.max_age is not None:
            morsel["max-age"] = str(self.max_age)
        if self.expires is not None:
            expires = self.expires if self.expires.tzinfo else self.expires.replace(tzinfo=UTC)
            morsel["expires"] = expires.astimezone(UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")
        if self.same_site:
            morsel["samesite"] = self.same_site.capitalize()
        if self.secure:
            morsel["secure"] = True


class CookieSynchronizer(BaseSynchronizer):
    """Persist synced values in a cookie jar.

    The jar is a :class:`http.cookies.SimpleCookie`. Server code can seed it
    from an incoming ``Cookie`` header with :meth:`load` and emit
    :meth:`set_cookie_headers` on the response.
    """

    def __init__(
        self,
        options: CookieOptions | None = None,
        *,
        jar: SimpleCookie | None = None,
        bus: BroadcastBus | None = None,
        server_compatible: bool = False,
    ) -> None:
        self._options = options or CookieOptions()
        self._jar = jar if jar is not None else SimpleCookie()
        self._bus = bus
        self.server_compatible = server_compatible

    @property
    def options(self) -> CookieOptions:
        return self._options

    @property
    def jar(self) -> SimpleCookie:
        return self._jar

    def load(self, cookie_header: str) -> None:
        """Merge cookies from a raw ``Cookie`` header into the jar."""
        try:
            self._jar.load(cookie_header)
        except CookieError:
            _logger.debug("Ignoring malformed cookie header", exc_info=True)

    def cookie_header(self) -> str:
        """Render the jar as a ``Cookie`` request header value."""
        return "; ".join(f"{key}={morsel.coded_value}" for key, morsel in self._jar.items())

    def set_cookie_headers(self) -> list[str]:
        """Render one ``Set-Cookie`` header value per cookie in the jar."""
        return [morsel.OutputString() for morsel in self._jar.values()]

    def read(self, key: str) -> Any:
        morsel = self._jar.get(key)
        if morsel is None or not morsel.value:
            return None
        try:
            return decode_text(unquote(morsel.value), key=key)
        except SyncPayloadError:
            _logger.debug("Ignoring malformed cookie key=%s", key, exc_info=True)
            return None

    def write(self, key: str, value: Any) -> None:
        encoded = quote(encode_text(value), safe="")
        self._jar[key] = encoded
        self._options.apply(self._jar[key])

        size = len(self._jar[key].OutputString().encode("utf-8"))
        if size > _MAX_COOKIE_BYTES:
            _logger.warning("Cookie %s is %d bytes; browsers may drop it", key, size)

        if self._bus is None:
            return
        try:
            self._bus.publish(channel_name(_CHANNEL_KIND, key), snapshot(value))
        except Exception:
            _logger.debug("Cookie broadcast failed key=%s", key, exc_info=True)

    def subscribe(self, key: str, callback: RemoteCallback) -> Callable[[], None]:
        if self._bus is None:
            _logger.debug("No broadcast bus configured; remote sync disabled for key=%s", key)
            return lambda: None
        return self._bus.listen(channel_name(_CHANNEL_KIND, key), callback)
