from conftest import FakeClock

from huddle.gate import MessageGate
from huddle.state import OrchestratorState


def _gate(clock: FakeClock, **kwargs) -> MessageGate:
    return MessageGate(OrchestratorState(clock), lock_timeout=30, history_size=100, **kwargs)


def test_admit_marks_processed_and_locks(clock: FakeClock) -> None:
    gate = _gate(clock)
    assert gate.admit("c1", "m1") is True
    assert gate.is_locked("c1")


def test_same_message_is_admitted_once(clock: FakeClock) -> None:
    gate = _gate(clock)
    assert gate.admit("c1", "m1") is True
    gate.release("c1", "m1")
    assert gate.admit("c1", "m1") is False


def test_busy_conversation_denies_other_messages(clock: FakeClock) -> None:
    gate = _gate(clock)
    assert gate.admit("c1", "m1") is True
    assert gate.admit("c1", "m2") is False
    # other conversations are independent
    assert gate.admit("c2", "m2") is True


def test_release_by_owner_frees_conversation(clock: FakeClock) -> None:
    gate = _gate(clock)
    gate.admit("c1", "m1")
    gate.release("c1", "m1")
    assert not gate.is_locked("c1")
    assert gate.admit("c1", "m2") is True


def test_release_without_message_id_always_frees(clock: FakeClock) -> None:
    gate = _gate(clock)
    gate.admit("c1", "m1")
    gate.release("c1")
    assert not gate.is_locked("c1")


def test_late_release_after_sweep_keeps_newer_lock(clock: FakeClock) -> None:
    gate = _gate(clock)
    assert gate.admit("c1", "a")
    clock.advance(31)
    assert gate.sweep() == 1
    assert gate.admit("c1", "b")

    gate.release("c1", "a")

    assert gate.is_locked("c1")
    assert gate.admit("c1", "c") is False
    gate.release("c1", "b")
    assert gate.admit("c1", "c") is True


def test_release_without_lock_is_noop(clock: FakeClock) -> None:
    gate = _gate(clock)
    gate.release("c1", "m1")
    assert not gate.is_locked("c1")


def test_sweep_releases_stale_locks_only(clock: FakeClock) -> None:
    gate = _gate(clock)
    gate.admit("c1", "m1")
    clock.advance(20)
    gate.admit("c2", "m2")
    clock.advance(15)

    assert gate.sweep() == 1
    assert not gate.is_locked("c1")
    assert gate.is_locked("c2")


def test_sweep_keeps_most_recent_processed_ids(clock: FakeClock) -> None:
    state = OrchestratorState(clock)
    gate = MessageGate(state, lock_timeout=30, history_size=3)
    for i in range(5):
        assert gate.admit("c1", f"m{i}")
        gate.release("c1", f"m{i}")

    gate.sweep()

    assert list(state.processed["c1"]) == ["m2", "m3", "m4"]
    # trimmed ids can be admitted again
    assert gate.admit("c1", "m0") is True
