"""
Deadlock Detection Algorithm for the Resource Allocation Graph Simulator.

Implements matrix-based deadlock detection (Work/Finish algorithm) for
multi-instance resources, plus a wait-for cycle search used only to explain
the result.
"""

import numpy as np
from typing import Dict, List, Optional

from models.allocation_store import AllocationStore
from models.report import DeadlockReport
from algorithms.graph import build_wait_for_graph, subgraph_edges


def detect_deadlock(store: AllocationStore, record: bool = True) -> DeadlockReport:
    """
    Detect deadlock using matrix-based Work/Finish algorithm.

    Algorithm (Multi-Instance Resources):
    1. Work = Available.copy()
    2. Request[p][r] = 1 if p waits on r
    3. Finish[p] = True for processes holding nothing and requesting nothing
    4. Find p with Finish[p] == False and Request[p] <= Work (element-wise);
       if found: Work += Allocation[p], Finish[p] = True, restart the scan
    5. Every process with Finish[p] == False is deadlocked

    Time Complexity: O(P²×R) where P = processes, R = resources

    Args:
        store: Allocation state to analyse (not mutated apart from caching the report)
        record: Cache the report on the store as its current deadlock state

    Returns:
        DeadlockReport for this state

    References:
        Silberschatz, A., Galvin, P. B., & Gagne, G. (2018).
        Operating System Concepts (10th ed.). Chapter 7: Deadlocks.
    """
    process_ids = store.process_ids
    allocation = store.allocation_matrix
    request = store.request_matrix

    # Step 1-3: Initialize Work and Finish vectors
    work = store.available_vector.copy()
    finish = np.zeros(store.num_processes, dtype=bool)
    for i in range(store.num_processes):
        if not allocation[i].any() and not request[i].any():
            finish[i] = True

    # Step 4: Iteratively find processes that can complete
    found_progress = True
    while found_progress:
        found_progress = False

        for i in range(store.num_processes):
            if finish[i]:
                continue

            if np.all(request[i] <= work):
                # Process can complete - reclaim its allocation
                work += allocation[i]
                finish[i] = True
                found_progress = True
                # Restart search from beginning for deterministic behavior
                break

    # Step 5: Unfinished processes are deadlocked
    deadlocked = [process_ids[i] for i, done in enumerate(finish) if not done]
    report = _build_report(store, deadlocked)

    if record:
        store.record_detection(report)
    return report


def _build_report(store: AllocationStore, deadlocked: List[str]) -> DeadlockReport:
    """Attach the explanation (cycle or knot edges) to the deadlocked set."""
    if not deadlocked:
        return DeadlockReport(
            detected=False,
            timestamp=store.step,
            revision=store.revision
        )

    requested = {store.processes[pid].waiting_for for pid in deadlocked}
    resources = tuple(rid for rid in store.resources if rid in requested)

    wait_for = build_wait_for_graph(store, restrict_to=deadlocked)
    cycle_processes = find_cycle(wait_for)
    trace = expand_cycle(store, cycle_processes) if cycle_processes else []

    # A simple cycle is a full witness only when every resource on it is single-instance
    single_instance = bool(trace) and all(
        store.resources[node].instances == 1
        for node in trace if node in store.resources
    )

    return DeadlockReport(
        detected=True,
        deadlocked_processes=tuple(deadlocked),
        deadlocked_resources=resources,
        explanation_edges=tuple(subgraph_edges(store, deadlocked)),
        cycle=tuple(trace) if single_instance else (),
        is_knot=not single_instance,
        timestamp=store.step,
        revision=store.revision
    )


def find_cycle(graph: Dict[str, List[str]]) -> Optional[List[str]]:
    """
    Find one cycle in a directed graph using DFS with a recursion stack.

    Iterative: an explicit stack of neighbour iterators replaces recursion, so
    path length is not bounded by the recursion limit. Each node is visited at
    most once across the whole search, so the search terminates on any finite
    graph.

    Returns:
        Cycle as a list of nodes (first node not repeated at the end), or None
    """
    visited = set()
    on_stack = set()

    for root in graph:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        path = [root]
        frames = [iter(graph.get(root, []))]

        while frames:
            neighbor = next(frames[-1], None)
            if neighbor is None:
                frames.pop()
                on_stack.discard(path.pop())
                continue
            if neighbor in on_stack:
                return path[path.index(neighbor):]
            if neighbor not in visited:
                visited.add(neighbor)
                on_stack.add(neighbor)
                path.append(neighbor)
                frames.append(iter(graph.get(neighbor, [])))

    return None


def expand_cycle(store: AllocationStore, cycle: List[str]) -> List[str]:
    """
    Interleave resources into a process cycle: P1, R1, P3, R3, ...

    The resource between Pi and Pj is the one Pi waits on (held by Pj).
    """
    trace = []
    for pid in cycle:
        trace.append(pid)
        trace.append(store.processes[pid].waiting_for)
    return trace


def should_run_detection(current_step: int, detect_interval: int) -> bool:
    """
    Determine if detection should run at current simulation step.

    Args:
        current_step: Current simulation step number
        detect_interval: Steps between detection checks

    Returns:
        True if detection should run
    """
    return current_step % detect_interval == 0
