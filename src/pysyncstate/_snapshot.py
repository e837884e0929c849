"""Baseline snapshots and in-place replacement of synced containers."""

from __future__ import annotations

import contextlib
import copy
from collections.abc import Iterator, Mapping, MutableMapping, MutableSequence
from typing import Any

from pysyncstate._equality import is_sequence
from pysyncstate.exceptions import SyncStateError


def snapshot(value: Any) -> Any:
    """Return a structurally independent plain copy of *value*.

    Mappings become ``dict`` and sequences become ``list`` at every depth,
    which also unwraps reactive containers. Leaf values are deep-copied.
    Cyclic containers cannot be persisted and raise :class:`SyncStateError`.
    """
    return _snapshot(value, set())


def _snapshot(value: Any, active: set[int]) -> Any:
    is_map = isinstance(value, Mapping)
    if not is_map and not is_sequence(value):
        return copy.deepcopy(value)

    marker = id(value)
    if marker in active:
        raise SyncStateError("Cyclic values cannot be synced")
    active.add(marker)
    try:
        if is_map:
            return {key: _snapshot(item, active) for key, item in value.items()}
        return [_snapshot(item, active) for item in value]
    finally:
        active.discard(marker)


def same_kind(container: Any, value: Any) -> bool:
    """Whether *value* can be used to replace the contents of *container*."""
    if isinstance(container, Mapping):
        return isinstance(value, Mapping)
    if is_sequence(container):
        return is_sequence(value)
    return False


@contextlib.contextmanager
def _batched(container: Any) -> Iterator[None]:
    batch = getattr(container, "batch", None)
    if batch is None:
        yield
        return
    with batch():
        yield


def replace(container: Any, new_value: Any) -> None:
    """Overwrite the contents of *container* with *new_value*, keeping its identity.

    Keys present in the container but missing from *new_value* are removed
    first, then every key of *new_value* is assigned. Sequences are replaced
    wholesale by slice assignment. On reactive containers the whole operation
    produces one change notification.
    """
    if isinstance(container, MutableMapping):
        if not isinstance(new_value, Mapping):
            raise SyncStateError(f"Cannot replace a mapping with {type(new_value).__name__}")
        with _batched(container):
            for key in [key for key in container if key not in new_value]:
                del container[key]
            for key, item in new_value.items():
                container[key] = snapshot(item)
        return

    if isinstance(container, MutableSequence):
        if not is_sequence(new_value):
            raise SyncStateError(f"Cannot replace a sequence with {type(new_value).__name__}")
        with _batched(container):
            container[:] = [snapshot(item) for item in new_value]
        return

    raise SyncStateError(f"Unsupported container type {type(container).__name__}")
