from __future__ import annotations

import asyncio
import threading
from typing import Any

import pytest

from pysyncstate.engine import EnginePhase, SyncEngine, create_sync_state


class _FakeSynchronizer:
    def __init__(self, stored: Any = None, *, error: Exception | None = None, server_compatible: bool = False) -> None:
        self.stored = stored
        self.error = error
        self.server_compatible = server_compatible
        self.reads: list[str] = []
        self.writes: list[tuple[str, Any]] = []

    def read(self, key: str) -> Any:
        self.reads.append(key)
        if self.error is not None:
            raise self.error
        return self.stored

    def write(self, key: str, value: Any) -> None:
        self.writes.append((key, value))


class _AsyncSynchronizer(_FakeSynchronizer):
    async def read(self, key: str) -> Any:  # type: ignore[override]
        await asyncio.sleep(0)
        return super().read(key)


class _NeverResolvingSynchronizer(_FakeSynchronizer):
    def __init__(self) -> None:
        super().__init__()
        self.pending: asyncio.Future[Any] | None = None

    def read(self, key: str) -> Any:
        self.pending = asyncio.get_running_loop().create_future()
        return self.pending


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_hydration_replaces_value_with_stored_state() -> None:
    sync = _FakeSynchronizer({"theme": "dark"})
    engine = create_sync_state(sync, "prefs", {"theme": "light"})
    value = engine.value

    await engine.wait_hydrated()
    await _settle()

    assert engine.value is value
    assert engine.value == {"theme": "dark"}
    assert engine.baseline == {"theme": "dark"}
    assert engine.initialized
    assert sync.reads == ["prefs"]
    assert sync.writes == []
    engine.close()


@pytest.mark.asyncio
async def test_hydration_removes_keys_missing_from_stored_state() -> None:
    sync = _FakeSynchronizer({"theme": "dark"})
    engine = create_sync_state(sync, "prefs", {"theme": "light", "font": "serif"})

    await engine.wait_hydrated()

    assert engine.value == {"theme": "dark"}
    assert "font" not in engine.value
    engine.close()


@pytest.mark.asyncio
async def test_async_read_is_awaited() -> None:
    sync = _AsyncSynchronizer({"count": 3})
    async with SyncEngine(sync, "counter", {"count": 0}) as engine:
        assert engine.value["count"] == 3
        assert engine.phase is EnginePhase.READY


@pytest.mark.asyncio
async def test_nothing_stored_keeps_initial_value() -> None:
    sync = _FakeSynchronizer(None)
    async with SyncEngine(sync, "prefs", {"theme": "light"}) as engine:
        await _settle()
        assert engine.value == {"theme": "light"}
        assert engine.baseline == {"theme": "light"}
        assert engine.initialized
        assert sync.writes == []


@pytest.mark.asyncio
async def test_read_failure_falls_back_to_initial_value() -> None:
    sync = _FakeSynchronizer(error=RuntimeError("backend down"))
    async with SyncEngine(sync, "prefs", {"theme": "light"}) as engine:
        await _settle()
        assert engine.value == {"theme": "light"}
        assert engine.baseline == {"theme": "light"}
        assert engine.initialized
        assert sync.writes == []


@pytest.mark.asyncio
async def test_stored_value_of_wrong_kind_is_treated_as_nothing_stored() -> None:
    sync = _FakeSynchronizer(["not", "a", "mapping"])
    async with SyncEngine(sync, "prefs", {"theme": "light"}) as engine:
        assert engine.value == {"theme": "light"}
        assert engine.baseline == {"theme": "light"}


@pytest.mark.asyncio
async def test_list_values_hydrate_in_place() -> None:
    sync = _FakeSynchronizer(["a", "b", "c"])
    engine = create_sync_state(sync, "items", ["x"])
    value = engine.value

    await engine.wait_hydrated()

    assert engine.value is value
    assert list(engine.value) == ["a", "b", "c"]
    engine.close()


@pytest.mark.asyncio
async def test_no_write_before_hydration_settles() -> None:
    sync = _NeverResolvingSynchronizer()
    engine = create_sync_state(sync, "prefs", {"theme": "light"})

    engine.value["theme"] = "dark"
    await asyncio.sleep(0.02)

    assert not engine.initialized
    assert engine.phase is EnginePhase.HYDRATING
    assert sync.writes == []

    engine.close()
    assert engine.phase is EnginePhase.CLOSED


@pytest.mark.asyncio
async def test_edits_made_while_hydrating_are_written_when_nothing_is_stored() -> None:
    sync = _AsyncSynchronizer(None)
    engine = create_sync_state(sync, "prefs", {"theme": "light"})

    engine.value["theme"] = "dark"
    await engine.wait_hydrated()
    await _settle()

    assert sync.writes == [("prefs", {"theme": "dark"})]
    engine.close()


@pytest.mark.asyncio
async def test_engine_stays_inactive_without_client_context() -> None:
    sync = _FakeSynchronizer({"theme": "dark"})
    engine = create_sync_state(sync, "prefs", {"theme": "light"}, client_context=False)

    engine.value["theme"] = "blue"
    await engine.wait_hydrated()
    await _settle()

    assert not engine.active
    assert engine.phase is EnginePhase.INACTIVE
    assert sync.reads == []
    assert sync.writes == []
    assert engine.value == {"theme": "blue"}


@pytest.mark.asyncio
async def test_server_compatible_backend_activates_without_client_context() -> None:
    sync = _FakeSynchronizer({"theme": "dark"}, server_compatible=True)
    engine = create_sync_state(sync, "prefs", {"theme": "light"}, client_context=False)

    await engine.wait_hydrated()

    assert engine.active
    assert engine.value == {"theme": "dark"}
    engine.close()


def test_initial_value_must_be_mapping_or_list() -> None:
    with pytest.raises(TypeError):
        SyncEngine(_FakeSynchronizer(), "prefs", "light")


def _cyclic_document() -> dict[str, Any]:
    inner: dict[str, Any] = {"n": 1}
    inner["self"] = inner
    return {"data": inner}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "stored",
    [_cyclic_document(), {"data": {"lock": threading.Lock()}}],
    ids=["cyclic", "uncopyable-leaf"],
)
async def test_stored_value_that_cannot_be_copied_falls_back_to_initial(stored: dict[str, Any]) -> None:
    sync = _FakeSynchronizer(stored)
    engine = create_sync_state(sync, "prefs", {"data": {}})

    await engine.wait_hydrated()
    await _settle()

    assert engine.initialized
    assert engine.value == {"data": {}}
    assert engine.baseline == {"data": {}}
    assert sync.writes == []

    engine.value["data"]["n"] = 2
    await _settle()
    assert sync.writes == [("prefs", {"data": {"n": 2}})]
    engine.close()
