"""
Deadlock Recovery Tests

Tests victim selection, termination, preemption, the resolve() dispatcher
and the automatic recovery loop.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.allocation_store import AllocationStore
from models.errors import InvalidAction, InvalidReference, NotHolding
from models.process import ProcessState
from algorithms.detection import detect_deadlock
from algorithms.recovery import (
    ResolutionAction,
    preempt_resource,
    recover_from_deadlock,
    resolve,
    select_preemption,
    select_victim,
    terminate_process,
)
from utils.scenario_loader import load_scenario


SCENARIOS = project_root / "scenarios"


def load_circular_wait():
    store, _ = load_scenario(str(SCENARIOS / "circular_wait.json"))
    return store


def test_victim_strategies():
    """Test each victim selection strategy over the deadlocked set."""
    print("\n" + "="*60)
    print("TEST: Victim Selection")
    print("="*60)

    store = load_circular_wait()
    candidates = ["P3", "P1", "P2"]

    assert select_victim(candidates, store, "priority") == "P2"
    assert select_victim(candidates, store, "fifo") == "P1"
    assert select_victim(candidates, store, "youngest") == "P3"
    assert select_victim(candidates, store, "fewest_resources") == "P1"
    assert select_victim(candidates, store, "unknown") == "P2"
    assert select_victim([], store, "priority") is None
    print("  ✓ priority / fifo / youngest / fewest_resources")


def test_terminate_requires_deadlock_state():
    """Test resolution is refused without a current deadlock state."""
    store = load_circular_wait()
    try:
        terminate_process(store, "P2")
        assert False, "Should require detection first"
    except InvalidAction:
        pass

    try:
        terminate_process(store, "P9")
        assert False, "Should reject unknown process"
    except InvalidReference:
        pass


def test_terminate_breaks_cycle():
    """Terminating one cycle member frees its resource and ends the deadlock."""
    print("\n" + "="*60)
    print("TEST: Terminate")
    print("="*60)

    store = load_circular_wait()
    assert detect_deadlock(store).detected

    try:
        terminate_process(store, "P4")
        assert False, "P4 is not deadlocked"
    except InvalidAction:
        print("  ✓ Non-deadlocked process rejected")

    available_before = store.available("R3")
    message = terminate_process(store, "P2")
    assert message == "Terminated P2 (priority=2, holding R3)"
    assert store.available("R3") == available_before + 1
    assert "P2" not in store.processes
    assert store.resources["R2"].waiting_queue == []
    assert store.deadlock_state is None
    print(f"  ✓ {message}")

    assert not detect_deadlock(store).detected
    print("  ✓ Re-detection reports no deadlock")


def test_preempt_resource():
    """Preemption moves a unit and leaves the loser blocked."""
    print("\n" + "="*60)
    print("TEST: Preempt")
    print("="*60)

    store = load_circular_wait()
    report = detect_deadlock(store)

    assert select_preemption(store, report, "priority") == ("R1", "P3", "P1")

    message = preempt_resource(store, "R1", "P3", "P1")
    assert message == "Preempted R1 from P3 and granted it to P1"
    assert store.processes["P1"].held == ["R2", "R1"]
    assert store.processes["P1"].waiting_for is None
    assert store.status_of("P3").state == ProcessState.BLOCKED
    assert store.status_of("P1").state == ProcessState.RUNNING
    print(f"  ✓ {message}")

    assert not detect_deadlock(store).detected
    print("  ✓ Re-detection reports no deadlock")


def test_preempt_rejections():
    """Test invalid preemption requests."""
    store = load_circular_wait()

    try:
        preempt_resource(store, "R1", "P3", "P1")
        assert False, "Should require detection first"
    except InvalidAction:
        pass

    detect_deadlock(store)
    cases = [
        (("R1", "P2", "P1"), NotHolding),
        (("R1", "P3", "P3"), InvalidAction),
        (("R9", "P3", "P1"), InvalidReference),
        (("R1", "P3", "P9"), InvalidReference),
    ]
    for args, error in cases:
        try:
            preempt_resource(store, *args)
            assert False, f"Should raise {error.__name__}"
        except error:
            pass

    assert store.deadlock_state is not None
    assert store.processes["P3"].held == ["R1"]

    idle = AllocationStore()
    idle.add_resource("R1")
    idle.add_process("P1")
    idle.add_process("P2")
    idle.allocate("R1", "P1")
    assert not detect_deadlock(idle).detected
    try:
        preempt_resource(idle, "R1", "P1", "P2")
        assert False, "Preemption needs a detected deadlock"
    except InvalidAction:
        pass
    assert idle.holders_of("R1") == ["P1"]


def test_resolve_dispatch():
    """Test the resolve() entry point."""
    store = load_circular_wait()
    detect_deadlock(store)

    try:
        resolve(store, "explode", process_id="P1")
        assert False, "Unknown action should be rejected"
    except InvalidAction:
        pass

    try:
        resolve(store, ResolutionAction.PREEMPT, resource_id="R1")
        assert False, "Missing parameters should be rejected"
    except InvalidAction:
        pass

    message = resolve(store, "terminate", process_id="P1")
    assert message.startswith("Terminated P1")


def test_recover_by_termination():
    """Test the automatic loop with termination."""
    print("\n" + "="*60)
    print("TEST: Automatic Recovery (terminate)")
    print("="*60)

    store = load_circular_wait()
    success, actions = recover_from_deadlock(store, method="terminate", strategy="priority")

    for action in actions:
        print(f"  {action}")
    assert success
    assert actions[0] == "RECOVERY: Terminated P2 (priority=2, holding R3)"
    assert not detect_deadlock(store).detected
    print("  ✓ Deadlock resolved")


def test_recover_by_preemption():
    """Test the automatic loop with preemption."""
    print("\n" + "="*60)
    print("TEST: Automatic Recovery (preempt)")
    print("="*60)

    store = load_circular_wait()
    success, actions = recover_from_deadlock(store, method="preempt")

    for action in actions:
        print(f"  {action}")
    assert success
    assert actions[0] == "RECOVERY: Preempted R1 from P3 and granted it to P1"
    assert store.num_processes == 4
    print("  ✓ Deadlock resolved without terminating anything")


def test_recover_without_deadlock():
    store, _ = load_scenario(str(SCENARIOS / "multi_instance.json"))
    success, actions = recover_from_deadlock(store)
    assert not success
    assert actions == ["No deadlocked processes to recover"]


def main():
    """Run all recovery tests."""
    print("\n" + "="*70)
    print("DEADLOCK RECOVERY TESTS")
    print("="*70)

    try:
        test_victim_strategies()
        test_terminate_requires_deadlock_state()
        test_terminate_breaks_cycle()
        test_preempt_resource()
        test_preempt_rejections()
        test_resolve_dispatch()
        test_recover_by_termination()
        test_recover_by_preemption()
        test_recover_without_deadlock()

        print("\n" + "="*70)
        print("✅ ALL RECOVERY TESTS PASSED")
        print("="*70 + "\n")
        return 0

    except AssertionError as e:
        print(f"\n❌ TEST FAILED: {e}")
        return 1
    except Exception as e:
        print(f"\n❌ ERROR: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
