"""In-process backend, mainly for tests and single-process applications."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pysyncstate._snapshot import snapshot
from pysyncstate.bus.local import LocalBroadcastBus, channel_name
from pysyncstate.synchronizer import BaseSynchronizer, RemoteCallback

_CHANNEL_KIND = "mem"


class MemorySynchronizer(BaseSynchronizer):
    """Dictionary-backed store shared by every engine holding this instance.

    Values are copied on the way in and out. Every write is announced to the
    subscribers of its key, including the writing engine itself.
    """

    server_compatible = True

    def __init__(self, initial: Mapping[str, Any] | None = None, *, bus: LocalBroadcastBus | None = None) -> None:
        self._store: dict[str, Any] = {key: snapshot(value) for key, value in (initial or {}).items()}
        self._bus = bus if bus is not None else LocalBroadcastBus()

    def read(self, key: str) -> Any:
        value = self._store.get(key)
        return snapshot(value) if value is not None else None

    def write(self, key: str, value: Any) -> None:
        self._store[key] = snapshot(value)
        self._bus.publish(channel_name(_CHANNEL_KIND, key), value)

    def subscribe(self, key: str, callback: RemoteCallback) -> Callable[[], None]:
        return self._bus.listen(channel_name(_CHANNEL_KIND, key), callback)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)
