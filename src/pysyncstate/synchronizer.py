"""The contract a storage backend implements to be driven by a sync engine."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

RemoteCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class Synchronizer(Protocol):
    """Structural backend interface consumed by :class:`pysyncstate.engine.SyncEngine`.

    ``read`` returns the stored value or ``None`` when nothing is stored;
    ``write`` persists a value. Both may be plain functions or coroutines.

    Two optional capabilities are discovered with ``getattr``:

    * ``subscribe(key, callback) -> unsubscribe`` delivers values written
      elsewhere (another process, another engine, a push channel).
    * ``server_compatible`` allows the engine to activate outside a client
      context.
    """

    def read(self, key: str) -> Any | Awaitable[Any]:
        ...

    def write(self, key: str, value: Any) -> Any | Awaitable[Any]:
        ...


class BaseSynchronizer:
    """Convenience base for backends; declares the optional capabilities."""

    server_compatible: bool = False

    def read(self, key: str) -> Any | Awaitable[Any]:
        raise NotImplementedError

    def write(self, key: str, value: Any) -> Any | Awaitable[Any]:
        raise NotImplementedError


def supports_subscribe(synchronizer: Any) -> bool:
    """Whether *synchronizer* offers the optional ``subscribe`` capability."""
    return callable(getattr(synchronizer, "subscribe", None))


def is_server_compatible(synchronizer: Any) -> bool:
    return bool(getattr(synchronizer, "server_compatible", False))


async def maybe_await(result: T | Awaitable[T]) -> T:
    """Resolve a result that may be a plain value or an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result
