"""
Deadlock Detection Tests

Tests the graph projections, the Work/Finish reduction and the cycle/knot
explanation attached to each report.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.allocation_store import AllocationStore
from models.report import ALLOCATION_EDGE, REQUEST_EDGE, Edge
from algorithms.detection import detect_deadlock, find_cycle, should_run_detection
from algorithms.graph import (
    build_allocation_graph,
    build_wait_for_graph,
    subgraph_edges,
    wait_for_edges,
)
from utils.scenario_loader import load_scenario


SCENARIOS = project_root / "scenarios"


def build_circular_wait():
    """P1 -> R1 -> P3 -> R3 -> P2 -> R2 -> P1, all single-instance."""
    store = AllocationStore()
    for rid in ("R1", "R2", "R3"):
        store.add_resource(rid)
    for pid in ("P1", "P2", "P3"):
        store.add_process(pid)
    store.allocate("R2", "P1")
    store.allocate("R3", "P2")
    store.allocate("R1", "P3")
    store.request("P1", "R1")
    store.request("P2", "R2")
    store.request("P3", "R3")
    return store


def test_allocation_graph():
    """Test request and allocation edge projection."""
    print("\n" + "="*60)
    print("TEST: Allocation Graph")
    print("="*60)

    store = build_circular_wait()
    revision = store.revision
    edges = build_allocation_graph(store)

    assert edges[:3] == [
        Edge("P1", "R1", REQUEST_EDGE),
        Edge("P2", "R2", REQUEST_EDGE),
        Edge("P3", "R3", REQUEST_EDGE),
    ]
    assert edges[3:] == [
        Edge("R1", "P3", ALLOCATION_EDGE),
        Edge("R2", "P1", ALLOCATION_EDGE),
        Edge("R3", "P2", ALLOCATION_EDGE),
    ]
    assert store.revision == revision
    print(f"  ✓ {len(edges)} edges, store untouched")


def test_wait_for_graph():
    """Test the process-only projection."""
    store = build_circular_wait()
    store.add_process("P4")

    graph = build_wait_for_graph(store)
    assert graph == {"P1": ["P3"], "P2": ["P1"], "P3": ["P2"], "P4": []}

    restricted = build_wait_for_graph(store, restrict_to=["P1", "P3"])
    assert restricted == {"P1": ["P3"], "P3": []}

    assert Edge("P1", "P3", "wait") in wait_for_edges(graph)


def test_find_cycle():
    """Test DFS cycle search on plain adjacency maps."""
    assert find_cycle({"A": ["B"], "B": ["C"], "C": ["A"]}) == ["A", "B", "C"]
    assert find_cycle({"A": ["B"], "B": ["C"], "C": ["B"]}) == ["B", "C"]
    assert find_cycle({"A": ["B"], "B": ["C"], "C": []}) is None
    assert find_cycle({}) is None


def test_no_deadlock_when_chain_ends_in_runnable_process():
    """Test that a waiting chain ending at a non-waiting holder is not a deadlock."""
    print("\n" + "="*60)
    print("TEST: Chain Without Deadlock")
    print("="*60)

    store = AllocationStore()
    store.add_resource("R1")
    store.add_resource("R2")
    store.add_process("P1")
    store.add_process("P2")
    store.add_process("P3")
    store.allocate("R1", "P2")
    store.allocate("R2", "P3")
    store.request("P1", "R1")
    store.request("P2", "R2")

    report = detect_deadlock(store)
    assert not report.detected
    assert report.deadlocked_processes == ()
    assert report.describe() == "No deadlock detected"
    print("  ✓ P1 -> P2 -> P3 chain resolves")


def test_three_process_cycle():
    """Test the canonical three-process circular wait."""
    print("\n" + "="*60)
    print("TEST: Three-Process Circular Wait")
    print("="*60)

    store = build_circular_wait()
    report = detect_deadlock(store)

    assert report.detected
    assert set(report.deadlocked_processes) == {"P1", "P2", "P3"}
    assert report.deadlocked_resources == ("R1", "R2", "R3")
    assert report.cycle == ("P1", "R1", "P3", "R3", "P2", "R2")
    assert not report.is_knot
    assert len(report.explanation_edges) == 6
    assert store.deadlock_state is report
    print(f"  ✓ {report.describe()}")


def test_cycle_with_spare_unit_is_not_deadlock():
    """A wait-for cycle through a resource with a free unit can still finish."""
    store = AllocationStore()
    store.add_resource("R1", instances=2)
    store.add_resource("R2")
    store.add_process("P1")
    store.add_process("P2")
    store.allocate("R1", "P1")
    store.allocate("R2", "P2")
    store.request("P1", "R2")
    store.request("P2", "R1")

    assert find_cycle(build_wait_for_graph(store)) is not None
    assert not detect_deadlock(store).detected


def test_knot_scenario():
    """Test a deadlock over multi-instance resources reported as a knot."""
    print("\n" + "="*60)
    print("TEST: Knot")
    print("="*60)

    store, _ = load_scenario(str(SCENARIOS / "knot.json"))
    report = detect_deadlock(store)

    assert report.detected
    assert report.is_knot
    assert report.cycle == ()
    assert report.deadlocked_processes == ("P1", "P2", "P3")
    assert report.explanation_edges == tuple(subgraph_edges(store, report.deadlocked_processes))
    assert "knot" in report.describe()
    print(f"  ✓ {report.describe()}")


def test_detection_is_idempotent():
    """Running detection twice on the same state gives equal reports."""
    store = build_circular_wait()
    first = detect_deadlock(store)
    second = detect_deadlock(store)
    assert first == second
    assert first.as_dict() == second.as_dict()


def test_release_grants_waiting_process():
    """Test that a released unit lets the queue head finish."""
    print("\n" + "="*60)
    print("TEST: Multi-Instance Release")
    print("="*60)

    store, _ = load_scenario(str(SCENARIOS / "multi_instance.json"))
    assert not detect_deadlock(store).detected

    store.release("R1", "P1")
    assert store.grant_waiting("R1") == ["P3"]
    assert store.processes["P3"].holds("R1")
    assert store.processes["P4"].waiting_for == "R1"

    report = detect_deadlock(store)
    assert not report.detected
    print("  ✓ P3 granted, no deadlock remains")


def build_ring(size):
    """Each Pi holds Ri and requests the next resource round the ring."""
    store = AllocationStore()
    for i in range(1, size + 1):
        store.add_resource(f"R{i}")
    for i in range(1, size + 1):
        store.add_process(f"P{i}")
        store.allocate(f"R{i}", f"P{i}")
    for i in range(1, size + 1):
        store.request(f"P{i}", f"R{i % size + 1}")
    return store


def test_long_ring():
    """A wait-for ring far longer than the recursion limit is still explained."""
    print("\n" + "="*60)
    print("TEST: 1500-Process Ring")
    print("="*60)

    store = build_ring(1500)
    report = detect_deadlock(store)

    assert report.detected
    assert len(report.deadlocked_processes) == 1500
    assert not report.is_knot
    assert len(report.cycle) == 3000
    assert report.cycle[:4] == ("P1", "R2", "P2", "R3")
    assert report.cycle[-2:] == ("P1500", "R1")
    print(f"  ✓ Cycle of {len(report.cycle) // 2} processes found")


def test_should_run_detection():
    assert should_run_detection(0, 1)
    assert should_run_detection(4, 2)
    assert not should_run_detection(3, 2)


def main():
    """Run all detection tests."""
    print("\n" + "="*70)
    print("DEADLOCK DETECTION TESTS")
    print("="*70)

    try:
        test_allocation_graph()
        test_wait_for_graph()
        test_find_cycle()
        test_no_deadlock_when_chain_ends_in_runnable_process()
        test_three_process_cycle()
        test_cycle_with_spare_unit_is_not_deadlock()
        test_knot_scenario()
        test_detection_is_idempotent()
        test_release_grants_waiting_process()
        test_long_ring()
        test_should_run_detection()

        print("\n" + "="*70)
        print("✅ ALL DETECTION TESTS PASSED")
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
