from __future__ import annotations

from pyschools.state.signal import Signal


def test_set_notifies_only_on_change() -> None:
    signal: Signal[int] = Signal(1)
    seen: list[int] = []
    signal.subscribe(seen.append)

    signal.set(1)
    signal.set(2)
    signal.update(lambda value: value + 1)

    assert seen == [2, 3]
    assert signal.get() == 3
    assert signal() == 3


def test_unsubscribe_stops_notifications() -> None:
    signal: Signal[str] = Signal("")
    seen: list[str] = []
    unsubscribe = signal.subscribe(seen.append)

    signal.set("a")
    unsubscribe()
    unsubscribe()
    signal.set("b")

    assert seen == ["a"]


def test_failing_listener_does_not_block_others() -> None:
    signal: Signal[int] = Signal(0)
    seen: list[int] = []

    def boom(_value: int) -> None:
        raise RuntimeError("listener failure")

    signal.subscribe(boom)
    signal.subscribe(seen.append)
    signal.set(5)

    assert seen == [5]


def test_readonly_view_tracks_value_and_has_no_setter() -> None:
    signal: Signal[bool] = Signal(False)
    view = signal.readonly()
    seen: list[bool] = []
    view.subscribe(seen.append)

    signal.set(True)

    assert view.get() is True
    assert view() is True
    assert seen == [True]
    assert not hasattr(view, "set")
