from __future__ import annotations

from typing import Any

from pysyncstate.backends import MemorySynchronizer
from pysyncstate.bus import LocalBroadcastBus


def test_read_returns_copy_of_stored_value() -> None:
    backend = MemorySynchronizer({"prefs": {"tags": ["a"]}})

    value = backend.read("prefs")
    value["tags"].append("b")

    assert backend.read("prefs") == {"tags": ["a"]}
    assert backend.read("missing") is None


def test_write_stores_copy_and_notifies_subscribers() -> None:
    backend = MemorySynchronizer()
    received: list[Any] = []
    unsubscribe = backend.subscribe("prefs", received.append)
    value = {"theme": "dark"}

    backend.write("prefs", value)
    value["theme"] = "mutated"

    assert backend.read("prefs") == {"theme": "dark"}
    assert received == [{"theme": "dark"}]

    unsubscribe()
    backend.write("prefs", {"theme": "light"})
    assert len(received) == 1


def test_delete_removes_key() -> None:
    backend = MemorySynchronizer({"prefs": {"a": 1}})
    backend.delete("prefs")
    backend.delete("prefs")
    assert backend.read("prefs") is None


def test_shared_bus_connects_backends() -> None:
    bus = LocalBroadcastBus()
    first = MemorySynchronizer(bus=bus)
    second = MemorySynchronizer(bus=bus)
    received: list[Any] = []
    second.subscribe("prefs", received.append)

    first.write("prefs", {"n": 1})

    assert received == [{"n": 1}]
    assert MemorySynchronizer.server_compatible is True
