"""Structural equality for synced values."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SCALAR_SEQUENCES = (str, bytes, bytearray)


def is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, _SCALAR_SEQUENCES)


def deep_equal(a: Any, b: Any) -> bool:
    """Compare two values by shape and content rather than identity.

    Mappings are equal when their key sets match and each value compares
    equal; sequences when their lengths match and each index compares equal.
    A mapping never equals a sequence, and ``bool`` only equals ``bool``.

    Cyclic graphs are supported: a pair of containers that is already being
    compared further up the stack is assumed equal, so the outcome is decided
    by the rest of the structure instead of recursing forever.
    """
    return _deep_equal(a, b, set())


def _deep_equal(a: Any, b: Any, active: set[tuple[int, int]]) -> bool:
    if a is b:
        return True

    a_map = isinstance(a, Mapping)
    b_map = isinstance(b, Mapping)
    a_seq = not a_map and is_sequence(a)
    b_seq = not b_map and is_sequence(b)

    if not (a_map or a_seq or b_map or b_seq):
        if isinstance(a, bool) or isinstance(b, bool):
            return type(a) is type(b) and a == b
        return bool(a == b)

    if a_map != b_map or a_seq != b_seq:
        return False

    pair = (id(a), id(b))
    if pair in active:
        return True
    active.add(pair)
    try:
        if a_map:
            if len(a) != len(b):
                return False
            if a.keys() != b.keys():
                return False
            return all(_deep_equal(a[key], b[key], active) for key in a)

        if len(a) != len(b):
            return False
        return all(_deep_equal(x, y, active) for x, y in zip(a, b, strict=True))
    finally:
        active.discard(pair)
