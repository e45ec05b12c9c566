"""
Graph Reducer for the Resource Allocation Graph Simulator.

Projects the allocation store onto the bipartite resource allocation graph and
onto the process-only wait-for graph. Both projections are recomputed on every
call and never cached.
"""

from typing import Dict, Iterable, List, Optional

from models.allocation_store import AllocationStore
from models.report import ALLOCATION_EDGE, REQUEST_EDGE, Edge


def build_allocation_graph(store: AllocationStore) -> List[Edge]:
    """
    Build the resource allocation graph edge set.

    - Request edge process -> resource for every outstanding request
    - Allocation edge resource -> process for every allocated unit

    Request edges come first (process order), then allocation edges
    (resource order, holder grant order).
    """
    edges = []
    for pid, process in store.processes.items():
        if process.waiting_for is not None:
            edges.append(Edge(pid, process.waiting_for, REQUEST_EDGE))
    for rid, resource in store.resources.items():
        for pid in resource.allocated_to:
            edges.append(Edge(rid, pid, ALLOCATION_EDGE))
    return edges


def build_wait_for_graph(
    store: AllocationStore,
    restrict_to: Optional[Iterable[str]] = None
) -> Dict[str, List[str]]:
    """
    Build the wait-for graph: Pi -> Pj when Pi waits on a resource held (in
    part) by Pj.

    Args:
        store: Allocation state
        restrict_to: If given, only processes in this set appear as nodes

    Returns:
        Adjacency lists keyed by process id (store order); every included
        process has an entry, possibly empty
    """
    allowed = set(restrict_to) if restrict_to is not None else None
    graph = {}
    for pid, process in store.processes.items():
        if allowed is not None and pid not in allowed:
            continue
        graph[pid] = []
        if process.waiting_for is None:
            continue
        for holder in store.resources[process.waiting_for].allocated_to:
            if holder == pid:
                continue
            if allowed is not None and holder not in allowed:
                continue
            if holder not in graph[pid]:
                graph[pid].append(holder)
    return graph


def wait_for_edges(graph: Dict[str, List[str]]) -> List[Edge]:
    """Flatten a wait-for adjacency map into edges (kind "wait")."""
    return [Edge(src, dst, "wait") for src, targets in graph.items() for dst in targets]


def subgraph_edges(store: AllocationStore, process_ids: Iterable[str]) -> List[Edge]:
    """
    Allocation-graph edges whose process endpoint is in process_ids and whose
    resource is requested by one of those processes.

    This is the explanation witness for a deadlocked set.
    """
    members = set(process_ids)
    requested = {
        store.processes[pid].waiting_for
        for pid in members
        if store.processes[pid].waiting_for is not None
    }
    edges = []
    for edge in build_allocation_graph(store):
        if edge.kind == REQUEST_EDGE:
            if edge.source in members:
                edges.append(edge)
        elif edge.source in requested and edge.target in members:
            edges.append(edge)
    return edges
