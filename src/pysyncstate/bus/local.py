"""In-process broadcast bus and the structural interface all buses share."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any, Protocol

_logger = logging.getLogger(__name__)

BusListener = Callable[[Any], None]


def channel_name(kind: str, key: str) -> str:
    """Channel carrying notifications for *key* of a backend family (e.g. ``ck``)."""
    return f"{kind}-sync-{key}"


class BroadcastBus(Protocol):
    """Deliver every published payload to all current listeners of a channel."""

    def publish(self, channel: str, payload: Any) -> None:
        ...

    def listen(self, channel: str, callback: BusListener) -> Callable[[], None]:
        ...


class LocalBroadcastBus:
    """Synchronous bus shared by engines living in the same process.

    Each listener receives its own deep copy of the payload, so listeners
    cannot observe each other's mutations.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[BusListener]] = {}

    def publish(self, channel: str, payload: Any) -> None:
        listeners = list(self._listeners.get(channel, ()))
        _logger.debug("Publishing on channel=%s listeners=%d", channel, len(listeners))
        for listener in listeners:
            try:
                listener(copy.deepcopy(payload))
            except Exception:
                _logger.exception("Bus listener failed on channel=%s", channel)

    def listen(self, channel: str, callback: BusListener) -> Callable[[], None]:
        self._listeners.setdefault(channel, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(channel)
            if listeners is None or callback not in listeners:
                return
            listeners.remove(callback)
            if not listeners:
                self._listeners.pop(channel, None)

        return unsubscribe

    def listener_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, ()))
