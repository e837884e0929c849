"""Deep-reactive mapping and list containers.

A synced value is handed to callers once and mutated in place for the rest
of its life, so change detection has to come from the container itself.
Nested dicts and lists assigned into a reactive container are wrapped as
reactive children; a mutation at any depth notifies the listeners of the
root container.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, MutableMapping, MutableSequence
from typing import Any, overload

from pysyncstate._equality import deep_equal, is_sequence
from pysyncstate._snapshot import snapshot

_logger = logging.getLogger(__name__)

ChangeListener = Callable[["ReactiveContainer"], None]


class _ReactiveNode:
    """Parent link, listener list and batching shared by both containers."""

    def __init__(self) -> None:
        self._parent: _ReactiveNode | None = None
        self._listeners: list[ChangeListener] = []
        self._batch_depth = 0
        self._dirty = False

    def _root(self) -> _ReactiveNode:
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    def _adopt(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            child: _ReactiveNode = ReactiveDict(snapshot(value))
        elif is_sequence(value):
            child = ReactiveList(snapshot(value))
        else:
            return value
        child._parent = self
        return child

    @staticmethod
    def _release(value: Any) -> None:
        if isinstance(value, _ReactiveNode):
            value._parent = None

    def _changed(self) -> None:
        self._root()._emit()

    def _emit(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        for listener in list(self._listeners):
            try:
                listener(self)  # type: ignore[arg-type]
            except Exception:
                _logger.exception("Reactive change listener failed")

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register *listener* for changes anywhere below this container.

        Listeners are attached to the root container. Returns an idempotent
        unsubscribe function.
        """
        root = self._root()
        root._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in root._listeners:
                root._listeners.remove(listener)

        return unsubscribe

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        """Coalesce every change made inside the block into one notification."""
        root = self._root()
        root._batch_depth += 1
        try:
            yield
        finally:
            root._batch_depth -= 1
            if root._batch_depth == 0 and root._dirty:
                root._dirty = False
                root._emit()

    def to_plain(self) -> Any:
        """Return an independent plain ``dict``/``list`` copy of the contents."""
        return snapshot(self)

    __hash__ = None  # type: ignore[assignment]

    def __eq__(self, other: object) -> bool:
        return deep_equal(self, other)


class ReactiveDict(_ReactiveNode, MutableMapping[str, Any]):
    """A ``dict``-like container that reports every mutation."""

    def __init__(self, initial: Mapping[str, Any] | Iterable[tuple[str, Any]] = ()) -> None:
        super().__init__()
        self._data: dict[str, Any] = {}
        for key, value in dict(initial).items():
            self._data[key] = self._adopt(value)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        previous = self._data.get(key)
        self._release(previous)
        self._data[key] = self._adopt(value)
        self._changed()

    def __delitem__(self, key: str) -> None:
        self._release(self._data.pop(key))
        self._changed()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"ReactiveDict({self.to_plain()!r})"

    def update(self, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        with self.batch():
            super().update(*args, **kwargs)

    def clear(self) -> None:
        with self.batch():
            super().clear()


class ReactiveList(_ReactiveNode, MutableSequence[Any]):
    """A ``list``-like container that reports every mutation."""

    def __init__(self, initial: Iterable[Any] = ()) -> None:
        super().__init__()
        self._data: list[Any] = [self._adopt(value) for value in initial]

    @overload
    def __getitem__(self, index: int) -> Any: ...

    @overload
    def __getitem__(self, index: slice) -> list[Any]: ...

    def __getitem__(self, index: int | slice) -> Any:
        return self._data[index]

    def __setitem__(self, index: int | slice, value: Any) -> None:
        if isinstance(index, slice):
            replaced = self._data[index]
            self._data[index] = [self._adopt(item) for item in value]
            for previous in replaced:
                self._release(previous)
        else:
            previous = self._data[index]
            self._data[index] = self._adopt(value)
            self._release(previous)
        self._changed()

    def __delitem__(self, index: int | slice) -> None:
        if isinstance(index, slice):
            for previous in self._data[index]:
                self._release(previous)
        else:
            self._release(self._data[index])
        del self._data[index]
        self._changed()

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ReactiveList({self.to_plain()!r})"

    def insert(self, index: int, value: Any) -> None:
        self._data.insert(index, self._adopt(value))
        self._changed()

    def extend(self, values: Iterable[Any]) -> None:
        with self.batch():
            super().extend(values)

    def clear(self) -> None:
        with self.batch():
            super().clear()


ReactiveContainer = ReactiveDict | ReactiveList


def make_reactive(value: Any) -> ReactiveContainer:
    """Build a reactive container holding a copy of *value*."""
    if isinstance(value, Mapping):
        return ReactiveDict(snapshot(value))
    if is_sequence(value):
        return ReactiveList(snapshot(value))
    raise TypeError(f"Synced values must be a mapping or a list, got {type(value).__name__}")
