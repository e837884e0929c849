"""Local key-value backend: one JSON document per key in a directory."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pysyncstate._codec import decode_text, encode_text
from pysyncstate._snapshot import snapshot
from pysyncstate.bus.local import BroadcastBus, channel_name
from pysyncstate.exceptions import SyncBackendError, SyncPayloadError
from pysyncstate.synchronizer import BaseSynchronizer, RemoteCallback

_logger = logging.getLogger(__name__)

_CHANNEL_KIND = "ls"


class JsonFileSynchronizer(BaseSynchronizer):
    """Store each key as ``<directory>/<quoted key>.json``.

    Writes go through a temporary file and an atomic rename, so readers never
    observe a half-written document. A corrupt document reads as "nothing
    stored".
    """

    def __init__(
        self,
        directory: str | os.PathLike[str],
        *,
        bus: BroadcastBus | None = None,
        server_compatible: bool = False,
    ) -> None:
        self._directory = Path(directory)
        self._bus = bus
        self.server_compatible = server_compatible

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}.json"

    def read(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SyncBackendError(f"Could not read {path}: {exc}", key=key) from exc

        if not text.strip():
            return None
        try:
            return decode_text(text, key=key)
        except SyncPayloadError:
            _logger.debug("Ignoring malformed document key=%s path=%s", key, path, exc_info=True)
            return None

    def write(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(encode_text(value), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise SyncBackendError(f"Could not write {path}: {exc}", key=key) from exc

        if self._bus is None:
            return
        try:
            self._bus.publish(channel_name(_CHANNEL_KIND, key), snapshot(value))
        except Exception:
            _logger.debug("File broadcast failed key=%s", key, exc_info=True)

    def subscribe(self, key: str, callback: RemoteCallback) -> Callable[[], None]:
        if self._bus is None:
            _logger.debug("No broadcast bus configured; remote sync disabled for key=%s", key)
            return lambda: None
        return self._bus.listen(channel_name(_CHANNEL_KIND, key), callback)
