"""
Deadlock Risk Assessment for the Resource Allocation Graph Simulator.

Heuristic early-warning score computed from waiting chains and resource
contention. Runs whether or not a deadlock currently exists.
"""

from typing import List, Tuple

from models.allocation_store import AllocationStore
from models.report import ResolutionOption, RiskReport


HIGH_CONTENTION_MULTIPLIER = 1.5
DEFAULT_CONTENTION_THRESHOLD = 3

STRATEGY_PREEMPTION = "preemption"
STRATEGY_ALLOCATION_ORDERING = "allocation ordering"
STRATEGY_MONITOR = "monitor"


def assess_risk(
    store: AllocationStore,
    contention_threshold: int = DEFAULT_CONTENTION_THRESHOLD
) -> RiskReport:
    """
    Compute the deadlock risk score for the current state.

    score = clamp(chains / (processes + resources) * multiplier, 0, 1)
    where multiplier is 1.5 under high contention, 1 otherwise.

    Args:
        store: Allocation state (not mutated)
        contention_threshold: A resource whose allocation + wait count exceeds
            this makes contention "high"

    Returns:
        RiskReport with score, contention level, strategy and advice
    """
    node_count = store.num_processes + store.num_resources
    chains = find_waiting_chains(store, limit=node_count)
    capped = node_count > 0 and len(chains) >= node_count

    usage = resource_usage(store)
    high = any(count > contention_threshold for _, count in usage)
    contention_level = "high" if high else "moderate"

    score = calculate_risk_score(len(chains), store.num_processes, store.num_resources, contention_level)
    strategy = determine_strategy(score)

    deadlock_state = store.deadlock_state
    explanation = (
        f"Analysis based on {store.num_processes} processes and {store.num_resources} resources",
        f"Detected {'at least ' if capped else ''}{len(chains)} potential resource dependency chains",
        f"System resource contention level: {contention_level}",
        "Confirmed deadlock pattern in resource allocation graph"
        if deadlock_state is not None and deadlock_state.detected
        else "No immediate deadlock detected",
    )

    return RiskReport(
        score=score,
        contention_level=contention_level,
        recommended_strategy=strategy,
        chains=tuple(chains),
        chains_capped=capped,
        resource_usage=tuple(usage),
        explanation=explanation,
        resolution_options=tuple(generate_resolution_options(chains, contention_level)),
        prevention_tips=tuple(generate_prevention_tips(score, contention_level))
    )


def find_waiting_chains(store: AllocationStore, limit: int = 0) -> List[Tuple[str, ...]]:
    """
    Enumerate waits-for-holder chains starting at every waiting process.

    Iterative DFS with a per-path visited set, branching over every holder of
    the requested resource. A chain is recorded when the path
    - reaches a holder that is not waiting,
    - reaches a waiting process whose resource has no other holder, or
    - closes back on a process already on the path.

    Args:
        store: Allocation state
        limit: Stop after this many chains (0 = no limit). The score saturates
            at processes + resources chains, so that is the natural limit.

    Returns:
        Chains as tuples of process ids, in discovery order
    """
    chains = []

    def full() -> bool:
        return limit > 0 and len(chains) >= limit

    def other_holders(pid: str) -> List[str]:
        resource = store.resources[store.processes[pid].waiting_for]
        return [h for h in resource.allocated_to if h != pid]

    for start, process in store.processes.items():
        if full():
            break
        if not process.is_waiting():
            continue

        holders = other_holders(start)
        if not holders:
            chains.append((start,))
            continue

        path = [start]
        on_path = {start}
        frames = [iter(holders)]
        while frames and not full():
            holder = next(frames[-1], None)
            if holder is None:
                frames.pop()
                on_path.discard(path.pop())
                continue
            if holder in on_path or not store.processes[holder].is_waiting():
                chains.append(tuple(path + [holder]))
                continue
            next_holders = other_holders(holder)
            if not next_holders:
                chains.append(tuple(path + [holder]))
                continue
            path.append(holder)
            on_path.add(holder)
            frames.append(iter(next_holders))

    return chains


def resource_usage(store: AllocationStore) -> List[Tuple[str, int]]:
    """Allocation + wait count per resource (store order)."""
    combined = store.allocation_matrix.sum(axis=0) + store.request_matrix.sum(axis=0)
    return [(rid, int(combined[j])) for j, rid in enumerate(store.resources)]


def calculate_risk_score(
    chain_count: int,
    process_count: int,
    resource_count: int,
    contention_level: str
) -> float:
    """Clamp chains / (processes + resources) * multiplier into [0, 1]."""
    node_count = process_count + resource_count
    if node_count == 0:
        return 0.0
    base_risk = chain_count / node_count
    multiplier = HIGH_CONTENTION_MULTIPLIER if contention_level == "high" else 1.0
    return float(min(max(base_risk * multiplier, 0.0), 1.0))


def determine_strategy(score: float) -> str:
    if score > 0.7:
        return STRATEGY_PREEMPTION
    if score > 0.4:
        return STRATEGY_ALLOCATION_ORDERING
    return STRATEGY_MONITOR


def generate_resolution_options(chains, contention_level: str) -> List[ResolutionOption]:
    """Suggested actions derived from the chains and contention."""
    options = [ResolutionOption(
        name="Resource Monitoring",
        description="Implement real-time resource usage monitoring",
        impact="low",
        recommended=True
    )]

    if chains:
        options.append(ResolutionOption(
            name="Process Termination",
            description=f"Terminate process {chains[0][0]} to break potential deadlock",
            impact="medium",
            recommended=len(chains) > 2
        ))

    if contention_level == "high":
        options.append(ResolutionOption(
            name="Resource Allocation Review",
            description="Optimize resource allocation strategy",
            impact="medium",
            recommended=True
        ))

    return options


def generate_prevention_tips(score: float, contention_level: str) -> List[str]:
    tips = [
        "Monitor resource allocation patterns",
        "Implement resource request timeouts"
    ]

    if score > 0.5:
        tips.extend([
            "Consider implementing deadlock detection algorithm",
            "Review resource allocation strategy"
        ])

    if contention_level == "high":
        tips.extend([
            "Optimize resource utilization",
            "Implement resource preemption mechanisms"
        ])

    return tips
