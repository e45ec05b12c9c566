"""
Deadlock Recovery for the Resource Allocation Graph Simulator.

Implements process termination and resource preemption, victim selection
strategies and an automatic recovery loop. Every action requires a current
deadlock state and invalidates it.
"""

from enum import Enum
from typing import List, Tuple, Optional

from models.allocation_store import AllocationStore
from models.errors import InvalidAction, NotHolding
from models.report import DeadlockReport
from algorithms.detection import detect_deadlock


VICTIM_STRATEGIES = ("priority", "fifo", "youngest", "fewest_resources")


class ResolutionAction(Enum):
    """Resolution actions accepted by resolve()."""
    TERMINATE = "terminate"
    PREEMPT = "preempt"


def _require_deadlock_state(store: AllocationStore) -> DeadlockReport:
    report = store.deadlock_state
    if report is None:
        raise InvalidAction("No current deadlock state - run detection first")
    if not report.detected:
        raise InvalidAction("The current deadlock state reports no deadlock")
    return report


def select_victim(
    candidates: List[str],
    store: AllocationStore,
    strategy: str = "priority"
) -> Optional[str]:
    """
    Select victim process among candidates.

    Strategies:
    - "priority": Highest priority value (lowest priority)
    - "fifo": Earliest created process
    - "youngest": Most recently created process
    - "fewest_resources": Process holding fewest resources

    Ties resolve to the candidate that comes first in store order.

    Args:
        candidates: Process ids to choose from
        store: Current allocation state
        strategy: Selection strategy

    Returns:
        Process id of the victim, or None if there are no candidates
    """
    if not candidates:
        return None

    order = {pid: i for i, pid in enumerate(store.processes)}
    ordered = sorted(candidates, key=lambda pid: order[pid])

    if strategy == "priority":
        return max(ordered, key=lambda pid: store.processes[pid].priority)

    elif strategy == "fifo":
        return ordered[0]

    elif strategy == "youngest":
        return ordered[-1]

    elif strategy == "fewest_resources":
        return min(ordered, key=lambda pid: store.processes[pid].holding_count())

    else:
        # Default: priority strategy
        return select_victim(candidates, store, "priority")


def select_preemption(
    store: AllocationStore,
    report: DeadlockReport,
    strategy: str = "priority"
) -> Optional[Tuple[str, str, str]]:
    """
    Pick a (resource, from_process, to_process) preemption for a deadlock.

    The receiving process is the first deadlocked process in the resource's
    waiting queue (queue order decides preference); the process losing the
    unit is chosen among the resource's deadlocked holders by strategy.

    Returns:
        (resource_id, from_id, to_id) or None if no preemption applies
    """
    members = set(report.deadlocked_processes)
    for rid in report.deadlocked_resources:
        resource = store.resources.get(rid)
        if resource is None:
            continue
        receivers = [pid for pid in resource.waiting_queue if pid in members]
        if not receivers:
            continue
        to_id = receivers[0]
        holders = [pid for pid in resource.allocated_to if pid in members and pid != to_id]
        from_id = select_victim(holders, store, strategy)
        if from_id is not None:
            return rid, from_id, to_id
    return None


def terminate_process(store: AllocationStore, process_id: str) -> str:
    """
    Terminate a deadlocked process and release all its resources.

    Process termination:
    - Release every held unit back to Available
    - Remove the process from any waiting queue
    - Remove the process record
    - Invalidate the deadlock state (re-run detection to confirm)

    Raises:
        InvalidReference: Unknown process
        InvalidAction: No detected deadlock, or process is not deadlocked

    Returns:
        Description of the action
    """
    with store.lock:
        process = store.get_process(process_id)
        report = _require_deadlock_state(store)
        if not report.involves(process_id):
            raise InvalidAction(f"{process_id} is not part of the current deadlock")

        priority = process.priority
        released = store.remove_process(process_id)

    resources_str = ", ".join(released) if released else "nothing"
    return f"Terminated {process_id} (priority={priority}, holding {resources_str})"


def preempt_resource(
    store: AllocationStore,
    resource_id: str,
    from_id: str,
    to_id: str
) -> str:
    """
    Move one unit of a resource from one process to another.

    Resource preemption:
    - from_id loses the unit; it becomes BLOCKED if it holds nothing else
    - to_id receives the unit; its request is cleared if it was for this resource
    - Invalidate the deadlock state (re-run detection to confirm)

    Repeated preemption of the same process can starve it; fairness is left
    to the caller's selection policy.

    Raises:
        InvalidReference: Unknown process or resource
        InvalidAction: No detected deadlock, same process, or to_id already holds it
        NotHolding: from_id does not hold the resource

    Returns:
        Description of the action
    """
    with store.lock:
        store.get_resource(resource_id)
        source = store.get_process(from_id)
        target = store.get_process(to_id)
        _require_deadlock_state(store)

        if not source.holds(resource_id):
            raise NotHolding(f"{from_id} does not hold {resource_id}")
        if from_id == to_id:
            raise InvalidAction(f"Cannot preempt {resource_id} from {from_id} to itself")
        if target.holds(resource_id):
            raise InvalidAction(f"{to_id} already holds {resource_id}")

        store.release(resource_id, from_id)
        store.allocate(resource_id, to_id)
        if not source.held:
            store.set_blocked(from_id, True)

    return f"Preempted {resource_id} from {from_id} and granted it to {to_id}"


def resolve(store: AllocationStore, action, **params) -> str:
    """
    Apply a resolution action.

    Args:
        action: ResolutionAction or its string value
        params: process_id for TERMINATE; resource_id, from_id, to_id for PREEMPT

    Returns:
        Description of the action
    """
    try:
        action = ResolutionAction(action) if not isinstance(action, ResolutionAction) else action
    except ValueError:
        raise InvalidAction(f"Unknown resolution action: {action}")

    try:
        if action == ResolutionAction.TERMINATE:
            return terminate_process(store, params["process_id"])
        return preempt_resource(store, params["resource_id"], params["from_id"], params["to_id"])
    except KeyError as e:
        raise InvalidAction(f"{action.value}: missing parameter {e}")


def recover_from_deadlock(
    store: AllocationStore,
    method: str = "terminate",
    strategy: str = "priority"
) -> Tuple[bool, List[str]]:
    """
    Recover from deadlock by terminating victims or preempting resources.

    Methods:
    - "terminate": Kill victims one at a time until detection reports no deadlock
    - "preempt": Move units to queue-head waiters until detection reports no deadlock

    Detection is run first if the store has no current deadlock state. Each
    preemption satisfies one outstanding request, so both loops are bounded by
    the number of processes.

    Args:
        store: Allocation state to repair
        method: Recovery method
        strategy: Victim selection strategy

    Returns:
        Tuple of (success, list of action messages)
    """
    actions = []

    report = store.deadlock_state or detect_deadlock(store)
    if not report.detected:
        return False, ["No deadlocked processes to recover"]

    if method not in ("terminate", "preempt"):
        return False, [f"Unknown recovery method: {method}"]

    max_rounds = store.num_processes + 1
    for _ in range(max_rounds):
        if method == "terminate":
            victim = select_victim(list(report.deadlocked_processes), store, strategy)
            message = terminate_process(store, victim)
        else:
            choice = select_preemption(store, report, strategy)
            if choice is None:
                actions.append("FAILED: No preemption candidate in deadlocked set")
                return False, actions
            rid, from_id, to_id = choice
            message = preempt_resource(store, rid, from_id, to_id)

        actions.append(f"RECOVERY: {message}")

        # Re-run deadlock detection to see if deadlock is broken
        report = detect_deadlock(store)
        if not report.detected:
            actions.append("Deadlock resolved - no deadlocked processes remain")
            return True, actions

    actions.append("FAILED: Recovery did not converge")
    return False, actions
