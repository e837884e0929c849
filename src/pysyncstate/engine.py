"""Sync engine: keeps one reactive value consistent with one backend key.

Lifecycle::

    CREATED --start()--> HYDRATING --read settles--> READY --close()--> CLOSED
       \\--start() without client context or server-compatible backend--> INACTIVE

Outbound writes only leave the engine in ``READY``, outside a remote-update
window, and only when the value differs structurally from the baseline (the
last value known to match the backend). The write scheduler has its own
states: ``IDLE``, ``PENDING_DEBOUNCE``, ``PENDING_THROTTLE_WINDOW`` and
``WRITING``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from pysyncstate._equality import deep_equal
from pysyncstate._redact import redact_for_log
from pysyncstate._snapshot import replace, same_kind, snapshot
from pysyncstate.config import SyncSettings, WritePolicy
from pysyncstate.exceptions import SyncClosedError
from pysyncstate.reactive import ReactiveContainer, make_reactive
from pysyncstate.synchronizer import (
    Synchronizer,
    Unsubscribe,
    is_server_compatible,
    maybe_await,
    supports_subscribe,
)

_logger = logging.getLogger(__name__)

WriteErrorHandler = Callable[[str, BaseException], None]
SettingsLike = SyncSettings | Mapping[str, Any] | None


class EnginePhase(StrEnum):
    CREATED = "created"
    INACTIVE = "inactive"
    HYDRATING = "hydrating"
    READY = "ready"
    CLOSED = "closed"


class WriteState(StrEnum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    PENDING_THROTTLE_WINDOW = "pending_throttle_window"
    WRITING = "writing"


def _coerce_settings(settings: SettingsLike) -> SyncSettings:
    if settings is None:
        return SyncSettings()
    if isinstance(settings, SyncSettings):
        return settings
    return SyncSettings.model_validate(dict(settings))


class SyncEngine:
    """Binds one key of a synchronizer to one reactive value.

    Usage::

        async with SyncEngine(backend, "prefs", {"theme": "light"}) as engine:
            engine.value["theme"] = "dark"

    The engine must be started from inside a running event loop. Errors
    raised by the backend are logged and never propagate to the caller.
    """

    def __init__(
        self,
        synchronizer: Synchronizer,
        key: str,
        initial_value: Any,
        *,
        settings: SettingsLike = None,
        client_context: bool = True,
        on_write_error: WriteErrorHandler | None = None,
    ) -> None:
        self._synchronizer = synchronizer
        self._key = key
        self._settings = _coerce_settings(settings)
        self._value = make_reactive(initial_value)
        self._initial = self._value.to_plain()
        self._active = client_context or is_server_compatible(synchronizer)
        self._on_write_error = on_write_error

        self._phase = EnginePhase.CREATED
        self._write_state = WriteState.IDLE
        self._remote_window = 0
        self._baseline: Any = None
        self._last_write_at: float | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._hydration: asyncio.Task[None] | None = None
        self._check_handle: asyncio.Handle | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._unsubscribe_value: Unsubscribe | None = None
        self._unsubscribe_remote: Unsubscribe | None = None
        self._write_tasks: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> ReactiveContainer:
        """The synced container. Its identity never changes."""
        return self._value

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    @property
    def baseline(self) -> Any:
        """Copy of the last value known to match the backend, or ``None``."""
        return snapshot(self._baseline) if self._baseline is not None else None

    @property
    def phase(self) -> EnginePhase:
        return self._phase

    @property
    def write_state(self) -> WriteState:
        return self._write_state

    @property
    def active(self) -> bool:
        return self._active

    @property
    def initialized(self) -> bool:
        return self._phase is EnginePhase.READY

    @property
    def remote_updating(self) -> bool:
        return self._remote_window > 0

    @property
    def closed(self) -> bool:
        return self._phase is EnginePhase.CLOSED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> SyncEngine:
        """Begin hydration, subscribe to remote updates and arm the write loop."""
        if self._phase is EnginePhase.CLOSED:
            raise SyncClosedError(f"Sync engine for {self._key!r} is closed")
        if self._phase is not EnginePhase.CREATED:
            return self

        if not self._active:
            _logger.debug("Sync engine inactive key=%s (no client context)", self._key)
            self._phase = EnginePhase.INACTIVE
            return self

        self._loop = asyncio.get_running_loop()
        self._phase = EnginePhase.HYDRATING
        self._hydration = self._loop.create_task(self._hydrate(), name=f"pysyncstate-hydrate-{self._key}")

        if not self._settings.do_not_subscribe and supports_subscribe(self._synchronizer):
            self._subscribe_remote()

        self._unsubscribe_value = self._value.subscribe(self._on_value_changed)
        _logger.debug("Sync engine started key=%s policy=%s", self._key, self._settings.policy)
        return self

    async def wait_hydrated(self) -> None:
        """Wait until the hydration read has settled (success or failure)."""
        task = self._hydration
        if task is None:
            return
        await asyncio.wait({task})

    async def wait_writes(self) -> None:
        """Wait for asynchronous writes that are still in flight."""
        if self._write_tasks:
            await asyncio.wait(set(self._write_tasks))

    def close(self) -> None:
        """Tear the engine down.

        Stops change detection, releases the remote subscription and cancels
        pending debounce/throttle timers without flushing them. Calling it
        again has no effect.
        """
        if self._phase is EnginePhase.CLOSED:
            return
        self._phase = EnginePhase.CLOSED

        self._cancel_timer()
        if self._check_handle is not None:
            self._check_handle.cancel()
            self._check_handle = None

        unsubscribe_value, self._unsubscribe_value = self._unsubscribe_value, None
        if unsubscribe_value is not None:
            unsubscribe_value()

        unsubscribe_remote, self._unsubscribe_remote = self._unsubscribe_remote, None
        if unsubscribe_remote is not None:
            try:
                unsubscribe_remote()
            except Exception:
                _logger.debug("Remote unsubscribe failed key=%s", self._key, exc_info=True)

        hydration = self._hydration
        if hydration is not None and not hydration.done():
            hydration.cancel()

        self._remote_window = 0
        _logger.debug("Sync engine closed key=%s", self._key)

    async def __aenter__(self) -> SyncEngine:
        self.start()
        await self.wait_hydrated()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Hydration and remote updates
    # ------------------------------------------------------------------

    async def _hydrate(self) -> None:
        try:
            saved = await maybe_await(self._synchronizer.read(self._key))
        except Exception:
            _logger.debug("Hydration read failed key=%s; using initial value", self._key, exc_info=True)
            saved = None

        if self._phase is EnginePhase.CLOSED:
            return

        if saved is not None and not same_kind(self._value, saved):
            _logger.debug("Ignoring stored value of type %s for key=%s", type(saved).__name__, self._key)
            saved = None

        if saved is not None:
            try:
                saved = snapshot(saved)
            except Exception:
                _logger.debug(
                    "Stored value for key=%s cannot be copied; using initial value", self._key, exc_info=True
                )
                saved = None

        if saved is not None:
            replace(self._value, saved)
            self._baseline = snapshot(saved)
            _logger.debug("Hydrated key=%s value=%s", self._key, redact_for_log(self._baseline))
        else:
            self._baseline = snapshot(self._initial)
            _logger.debug("Nothing stored for key=%s; keeping initial value", self._key)

        self._phase = EnginePhase.READY
        # Changes made while hydrating were ignored; evaluate them once now.
        self._queue_check()

    def _subscribe_remote(self) -> None:
        subscribe = self._synchronizer.subscribe  # type: ignore[attr-defined]
        try:
            self._unsubscribe_remote = subscribe(self._key, self._on_remote)
        except Exception:
            _logger.debug("Remote subscription unavailable key=%s", self._key, exc_info=True)
            self._unsubscribe_remote = None

    def _on_remote(self, remote_value: Any) -> None:
        if self._phase is EnginePhase.CLOSED or self._loop is None:
            return
        if remote_value is None or not same_kind(self._value, remote_value):
            _logger.debug("Dropping remote value of type %s for key=%s", type(remote_value).__name__, self._key)
            return
        try:
            remote_value = snapshot(remote_value)
        except Exception:
            _logger.debug("Dropping remote value for key=%s that cannot be copied", self._key, exc_info=True)
            return

        if deep_equal(self._value, remote_value):
            # Typically our own write coming back through a broadcast channel.
            self._baseline = snapshot(remote_value)
            return

        self._remote_window += 1
        try:
            replace(self._value, remote_value)
            self._baseline = snapshot(remote_value)
        finally:
            # Queued behind the change check triggered by replace(), so that
            # check still sees the window open.
            self._loop.call_soon(self._close_remote_window)
        _logger.debug("Applied remote update key=%s value=%s", self._key, redact_for_log(self._baseline))

    def _close_remote_window(self) -> None:
        if self._remote_window > 0:
            self._remote_window -= 1

    # ------------------------------------------------------------------
    # Local write scheduling
    # ------------------------------------------------------------------

    def _on_value_changed(self, _container: ReactiveContainer) -> None:
        self._queue_check()

    def _queue_check(self) -> None:
        if self._check_handle is not None or self._loop is None or self._phase is EnginePhase.CLOSED:
            return
        self._check_handle = self._loop.call_soon(self._run_check)

    def _has_local_change(self) -> bool:
        if self._phase is not EnginePhase.READY or self.remote_updating:
            return False
        return not deep_equal(self._value, self._baseline)

    def _run_check(self) -> None:
        self._check_handle = None
        if not self._has_local_change():
            return

        policy = self._settings.policy
        if policy is WritePolicy.DEBOUNCE:
            self._schedule_debounce()
        elif policy is WritePolicy.THROTTLE:
            self._schedule_throttle()
        else:
            self._flush()

    def _schedule_debounce(self) -> None:
        assert self._loop is not None  # noqa: S101
        self._cancel_timer()
        self._timer = self._loop.call_later(self._settings.debounce_seconds, self._on_timer)
        self._write_state = WriteState.PENDING_DEBOUNCE

    def _schedule_throttle(self) -> None:
        assert self._loop is not None  # noqa: S101
        interval = self._settings.throttle_seconds
        now = self._loop.time()
        if self._last_write_at is None or now - self._last_write_at >= interval:
            self._cancel_timer()
            self._flush()
            return
        if self._timer is None:
            delay = self._last_write_at + interval - now
            self._timer = self._loop.call_later(delay, self._on_timer)
            self._write_state = WriteState.PENDING_THROTTLE_WINDOW

    def _on_timer(self) -> None:
        self._timer = None
        self._write_state = WriteState.IDLE
        if self._phase is not EnginePhase.READY or self._loop is None:
            return
        if self.remote_updating:
            # Re-evaluate once the remote window has closed.
            self._loop.call_soon(self._queue_check)
            return
        if self._has_local_change():
            self._flush()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if self._write_state in (WriteState.PENDING_DEBOUNCE, WriteState.PENDING_THROTTLE_WINDOW):
            self._write_state = WriteState.IDLE

    def _flush(self) -> None:
        assert self._loop is not None  # noqa: S101
        payload = self._value.to_plain()
        self._baseline = snapshot(payload)
        self._last_write_at = self._loop.time()
        self._write_state = WriteState.WRITING
        _logger.debug("Writing key=%s value=%s", self._key, redact_for_log(payload))
        try:
            result = self._synchronizer.write(self._key, payload)
        except Exception as exc:
            self._report_write_error(exc)
        else:
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._write_tasks.add(future)
                future.add_done_callback(self._on_write_done)
        finally:
            self._write_state = WriteState.IDLE

    def _on_write_done(self, future: asyncio.Future[Any]) -> None:
        self._write_tasks.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._report_write_error(exc)

    def _report_write_error(self, exc: BaseException) -> None:
        _logger.warning("Write failed for key=%s: %s", self._key, exc)
        if self._on_write_error is None:
            return
        try:
            self._on_write_error(self._key, exc)
        except Exception:
            _logger.exception("Write error handler failed for key=%s", self._key)


def create_sync_state(
    synchronizer: Synchronizer,
    key: str,
    initial_value: Any,
    settings: SettingsLike = None,
    *,
    client_context: bool = True,
    on_write_error: WriteErrorHandler | None = None,
) -> SyncEngine:
    """Create and start an engine for *key*. Must run inside an event loop."""
    engine = SyncEngine(
        synchronizer,
        key,
        initial_value,
        settings=settings,
        client_context=client_context,
        on_write_error=on_write_error,
    )
    return engine.start()


class SyncStateFactory:
    """Binds a synchronizer and default settings; creates one engine per call.

    Usage::

        prefs_sync = SyncStateFactory(CookieSynchronizer(), {"debounce": 200})
        engine = prefs_sync("prefs", {"theme": "light"})
    """

    def __init__(
        self,
        synchronizer: Synchronizer,
        settings: SettingsLike = None,
        *,
        client_context: bool = True,
        on_write_error: WriteErrorHandler | None = None,
    ) -> None:
        self._synchronizer = synchronizer
        self._settings = _coerce_settings(settings)
        self._client_context = client_context
        self._on_write_error = on_write_error

    @property
    def synchronizer(self) -> Synchronizer:
        return self._synchronizer

    def __call__(self, key: str, initial_value: Any, settings: SettingsLike = None) -> SyncEngine:
        return create_sync_state(
            self._synchronizer,
            key,
            initial_value,
            self._settings if settings is None else settings,
            client_context=self._client_context,
            on_write_error=self._on_write_error,
        )
