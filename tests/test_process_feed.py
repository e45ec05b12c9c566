"""
Process Feed Tests

Tests mapping external process snapshots onto the allocation store.
"""

import json
import sys
import tempfile
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.allocation_store import AllocationStore
from models.errors import CapacityExceeded, InvalidAction, InvalidReference
from models.process import ProcessState
from algorithms.detection import detect_deadlock
from simulator import Simulation
from utils.logger import SimulatorLogger
from utils.process_feed import (
    FeedError,
    JsonFeedObserver,
    ProcessObserver,
    ProcessSnapshot,
    StaticProcessObserver,
    ingest_snapshots,
)


def resource_store():
    store = AllocationStore()
    for rid in ("R1", "R2", "R3"):
        store.add_resource(rid)
    return store


def circular_snapshots():
    return [
        ProcessSnapshot(pid=1, name="db", held_resource_ids=["R2"], waiting_resource_id="R1"),
        ProcessSnapshot(pid=2, name="cache", held_resource_ids=["R3"], waiting_resource_id="R2"),
        ProcessSnapshot(pid=3, name="worker", held_resource_ids=["R1"], waiting_resource_id="R3"),
    ]


def test_pid_mapping():
    assert ProcessSnapshot(pid=7, name="x").process_id == "P7"
    assert ProcessSnapshot(pid="12", name="x").process_id == "P12"
    assert ProcessSnapshot(pid="P3", name="x").process_id == "P3"
    try:
        ProcessSnapshot(pid="nginx", name="x").process_id
        assert False, "Non-numeric pid should be rejected"
    except InvalidAction:
        pass


def test_from_dict():
    """Test both external and snake_case field names."""
    snap = ProcessSnapshot.from_dict({
        "pid": 4,
        "name": "backup",
        "heldResourceIds": ["R1"],
        "waitingResourceId": "R2",
        "observedState": "Waiting",
    })
    assert snap.held_resource_ids == ["R1"]
    assert snap.waiting_resource_id == "R2"
    assert snap.observed_state == "waiting"

    snap = ProcessSnapshot.from_dict({"pid": 5, "held_resource_ids": ["R3"]})
    assert snap.name == "5"
    assert snap.held_resource_ids == ["R3"]

    try:
        ProcessSnapshot.from_dict({"name": "no pid"})
        assert False, "Record without pid should be rejected"
    except FeedError:
        pass


def test_ingest_builds_deadlock():
    """Test an observed circular wait is detected after ingest."""
    print("\n" + "="*60)
    print("TEST: Ingest Observed Processes")
    print("="*60)

    store = resource_store()
    observer = StaticProcessObserver(circular_snapshots())
    assert isinstance(observer, ProcessObserver)

    ingested = ingest_snapshots(store, observer.observe_processes())
    assert ingested == ["P1", "P2", "P3"]
    assert store.processes["P1"].name == "db"
    assert store.holders_of("R1") == ["P3"]

    report = detect_deadlock(store)
    assert report.detected
    assert report.cycle == ("P1", "R1", "P3", "R3", "P2", "R2")
    print(f"  ✓ {report.describe()}")


def test_ingest_replaces_previous_processes():
    """Processes missing from the feed are dropped; priorities survive."""
    store = resource_store()
    store.add_process("P1", priority=4)
    store.add_process("P9")
    store.allocate("R1", "P9")

    ingest_snapshots(store, [
        ProcessSnapshot(pid=1, name="db", held_resource_ids=["R1"]),
        ProcessSnapshot(pid=2, name="idle", observed_state="blocked"),
    ])

    assert store.process_ids == ["P1", "P2"]
    assert store.processes["P1"].priority == 4
    assert store.holders_of("R1") == ["P1"]
    assert store.status_of("P2").state == ProcessState.BLOCKED


def test_rejected_feed_leaves_store_unchanged():
    """Test unknown resources and over-allocation are rejected atomically."""
    print("\n" + "="*60)
    print("TEST: Rejected Feed")
    print("="*60)

    store = resource_store()
    ingest_snapshots(store, circular_snapshots())
    revision = store.revision

    try:
        ingest_snapshots(store, [ProcessSnapshot(pid=1, name="db", held_resource_ids=["R8"])])
        assert False, "Unknown resource should be rejected"
    except InvalidReference:
        print("  ✓ Unknown resource rejected")

    try:
        ingest_snapshots(store, [
            ProcessSnapshot(pid=1, name="a", held_resource_ids=["R1"]),
            ProcessSnapshot(pid=2, name="b", held_resource_ids=["R1"]),
        ])
        assert False, "Over-allocation should be rejected"
    except CapacityExceeded:
        print("  ✓ Over-allocation rejected")

    assert store.revision == revision
    assert store.process_ids == ["P1", "P2", "P3"]


def test_create_missing_resources():
    store = AllocationStore()
    ingest_snapshots(
        store,
        [ProcessSnapshot(pid=1, name="db", held_resource_ids=["R5"], waiting_resource_id="R6")],
        create_missing_resources=True
    )
    assert store.resource_ids == ["R5", "R6"]
    assert store.processes["P1"].waiting_for == "R6"


def test_json_feed_in_simulation():
    """Test a JSON feed observer driving the tick loop."""
    print("\n" + "="*60)
    print("TEST: JSON Feed In Simulation")
    print("="*60)

    records = [
        {"pid": 1, "name": "db", "heldResourceIds": ["R2"], "waitingResourceId": "R1"},
        {"pid": 2, "name": "cache", "heldResourceIds": ["R3"], "waitingResourceId": "R2"},
        {"pid": 3, "name": "worker", "heldResourceIds": ["R1"], "waitingResourceId": "R3"},
    ]
    handle = tempfile.NamedTemporaryFile('w', suffix='.json', delete=False, encoding='utf-8')
    with handle:
        json.dump(records, handle)

    try:
        observer = JsonFeedObserver(handle.name)
        simulation = Simulation(resource_store(), observer=observer, logger=SimulatorLogger(quiet=True))
        report = simulation.tick()
        assert report.deadlocked
        assert report.deadlock.deadlocked_processes == ("P1", "P2", "P3")
        print("  ✓ Deadlock detected from the observed feed")
    finally:
        Path(handle.name).unlink()

    report = simulation.tick()
    assert len(report.rejected) == 1
    assert "feed ingest" in report.rejected[0]
    print("  ✓ Missing feed file recorded as a rejected ingest")

    try:
        JsonFeedObserver(handle.name).observe_processes()
        assert False, "Missing file should raise FeedError"
    except FeedError:
        pass


def main():
    """Run all process feed tests."""
    print("\n" + "="*70)
    print("PROCESS FEED TESTS")
    print("="*70)

    try:
        test_pid_mapping()
        test_from_dict()
        test_ingest_builds_deadlock()
        test_ingest_replaces_previous_processes()
        test_rejected_feed_leaves_store_unchanged()
        test_create_missing_resources()
        test_json_feed_in_simulation()

        print("\n" + "="*70)
        print("✅ ALL PROCESS FEED TESTS PASSED")
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
