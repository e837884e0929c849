from __future__ import annotations

import pytest

from pysyncstate.reactive import ReactiveDict, ReactiveList, make_reactive


def _recorder(container: ReactiveDict | ReactiveList) -> list[object]:
    calls: list[object] = []
    container.subscribe(calls.append)
    return calls


def test_top_level_mutations_notify() -> None:
    value = ReactiveDict({"theme": "light"})
    calls = _recorder(value)

    value["theme"] = "dark"
    value["size"] = 12
    del value["size"]

    assert len(calls) == 3
    assert all(call is value for call in calls)


def test_nested_mutations_notify_root() -> None:
    value = make_reactive({"layout": {"panels": [{"open": False}]}})
    calls = _recorder(value)

    value["layout"]["panels"][0]["open"] = True
    value["layout"]["panels"].append({"open": True})

    assert len(calls) == 2
    assert calls[0] is value


def test_assigned_plain_containers_become_reactive_copies() -> None:
    value = ReactiveDict()
    calls = _recorder(value)
    plain = {"n": 1}

    value["child"] = plain
    plain["n"] = 2
    value["child"]["n"] = 3

    assert isinstance(value["child"], ReactiveDict)
    assert value == {"child": {"n": 3}}
    assert len(calls) == 2


def test_removed_child_no_longer_notifies() -> None:
    value = make_reactive({"child": {"n": 1}})
    child = value["child"]
    del value["child"]
    calls = _recorder(value)

    child["n"] = 2

    assert calls == []


def test_batch_coalesces_notifications() -> None:
    value = ReactiveList([1, 2, 3])
    calls = _recorder(value)

    with value.batch():
        value.append(4)
        value[0] = 0
        del value[1]

    assert list(value) == [0, 3, 4]
    assert len(calls) == 1


def test_update_and_extend_notify_once() -> None:
    mapping = ReactiveDict()
    mapping_calls = _recorder(mapping)
    mapping.update({"a": 1, "b": 2})

    sequence = ReactiveList()
    sequence_calls = _recorder(sequence)
    sequence.extend([1, 2, 3])

    assert len(mapping_calls) == 1
    assert len(sequence_calls) == 1


def test_slice_assignment() -> None:
    value = ReactiveList([1, 2, 3, 4])
    value[1:3] = [{"x": 1}]
    assert value == [1, {"x": 1}, 4]
    assert isinstance(value[1], ReactiveDict)


def test_unsubscribe_is_idempotent() -> None:
    value = ReactiveDict()
    calls: list[object] = []
    unsubscribe = value.subscribe(calls.append)

    unsubscribe()
    unsubscribe()
    value["a"] = 1

    assert calls == []


def test_failing_listener_does_not_block_others() -> None:
    value = ReactiveDict()
    calls: list[object] = []

    def _broken(_container: object) -> None:
        raise RuntimeError("listener bug")

    value.subscribe(_broken)
    value.subscribe(calls.append)
    value["a"] = 1

    assert len(calls) == 1


def test_to_plain_returns_independent_copy() -> None:
    value = make_reactive({"tags": ["a"]})
    plain = value.to_plain()
    plain["tags"].append("b")

    assert value == {"tags": ["a"]}
    assert type(plain) is dict


def test_reactive_containers_are_unhashable() -> None:
    with pytest.raises(TypeError):
        hash(ReactiveDict())


def test_make_reactive_rejects_scalars() -> None:
    with pytest.raises(TypeError):
        make_reactive(42)
    with pytest.raises(TypeError):
        make_reactive("text")


def test_failed_extended_slice_assignment_keeps_children_attached() -> None:
    value = make_reactive([{"a": 1}, {"b": 2}, {"c": 3}])
    calls = _recorder(value)

    with pytest.raises(ValueError):
        value[::2] = [{"x": 1}]

    value[0]["a"] = 5
    value[2]["c"] = 6

    assert value == [{"a": 5}, {"b": 2}, {"c": 6}]
    assert len(calls) == 2
