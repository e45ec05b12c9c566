"""
Allocation Store for the Resource Allocation Graph Simulator.

Holds all process and resource records, enforces the allocation invariants on
every mutation and exposes the matrices and vectors required by the deadlock
detection algorithm.
"""

import re
import threading
import numpy as np
from typing import List, Dict, Optional

from models.errors import (
    AlreadyWaiting,
    CapacityExceeded,
    DuplicateId,
    InvalidAction,
    InvalidReference,
    NotHolding,
)
from models.process import Process, ProcessState, ProcessStatus
from models.report import DeadlockReport
from models.resource import Resource, ResourceKind


PROCESS_ID_PATTERN = re.compile(r"^P\d+$")
RESOURCE_ID_PATTERN = re.compile(r"^R\d+$")


class AllocationStore:
    """
    Current allocation state of the simulated system.

    Every mutating operation is atomic: it validates first, then applies the
    change, bumps the revision, invalidates the cached deadlock state and
    re-checks the invariants. Mutations are serialized by a re-entrant lock.

    Attributes:
        processes: Process records keyed by id (insertion order = matrix row order)
        resources: Resource records keyed by id (insertion order = matrix column order)
        step: Logical simulation time, advanced by the tick driver
        revision: Mutation counter
        deadlock_state: Last detection report, None once any mutation happens
    """

    def __init__(self, step: int = 0):
        self.processes: Dict[str, Process] = {}
        self.resources: Dict[str, Resource] = {}
        self.step = step
        self.revision = 0
        self.deadlock_state: Optional[DeadlockReport] = None
        self._lock = threading.RLock()

        # Matrices and vectors (None until first access)
        self._allocation_matrix: Optional[np.ndarray] = None
        self._request_matrix: Optional[np.ndarray] = None
        self._available_vector: Optional[np.ndarray] = None
        self._total_vector: Optional[np.ndarray] = None

    # ------------------------------------------------------------------
    # Sizes and ordering
    # ------------------------------------------------------------------

    @property
    def lock(self) -> threading.RLock:
        """Writer lock; hold it to make a multi-step change atomic."""
        return self._lock

    @property
    def num_processes(self) -> int:
        """Number of processes in the system."""
        return len(self.processes)

    @property
    def num_resources(self) -> int:
        """Number of resources in the system."""
        return len(self.resources)

    @property
    def process_ids(self) -> List[str]:
        return list(self.processes)

    @property
    def resource_ids(self) -> List[str]:
        return list(self.resources)

    # ------------------------------------------------------------------
    # Matrices
    # ------------------------------------------------------------------

    @property
    def allocation_matrix(self) -> np.ndarray:
        """Get allocation matrix [P][R] (units held)."""
        if self._allocation_matrix is None:
            self._build_allocation_matrix()
        return self._allocation_matrix

    @property
    def request_matrix(self) -> np.ndarray:
        """Get pending request matrix [P][R]."""
        if self._request_matrix is None:
            self._build_request_matrix()
        return self._request_matrix

    @property
    def available_vector(self) -> np.ndarray:
        """Get available units vector [R]."""
        if self._available_vector is None:
            self._build_available_vector()
        return self._available_vector

    @property
    def total_vector(self) -> np.ndarray:
        """Get total instances vector [R]."""
        if self._total_vector is None:
            self._total_vector = np.array(
                [r.instances for r in self.resources.values()], dtype=int
            )
        return self._total_vector

    def _build_allocation_matrix(self) -> None:
        """Build allocation matrix from process holdings."""
        columns = {rid: j for j, rid in enumerate(self.resources)}
        self._allocation_matrix = np.zeros((self.num_processes, self.num_resources), dtype=int)
        for i, process in enumerate(self.processes.values()):
            for rid in process.held:
                self._allocation_matrix[i][columns[rid]] += 1

    def _build_request_matrix(self) -> None:
        """Build pending request matrix from outstanding requests."""
        columns = {rid: j for j, rid in enumerate(self.resources)}
        self._request_matrix = np.zeros((self.num_processes, self.num_resources), dtype=int)
        for i, process in enumerate(self.processes.values()):
            if process.waiting_for is not None:
                self._request_matrix[i][columns[process.waiting_for]] = 1

    def _build_available_vector(self) -> None:
        """Build available units vector."""
        self._available_vector = np.zeros(self.num_resources, dtype=int)
        for j, resource in enumerate(self.resources.values()):
            self._available_vector[j] = resource.available_instances

    def refresh_matrices(self) -> None:
        """Drop cached matrices so they are rebuilt from the records."""
        self._allocation_matrix = None
        self._request_matrix = None
        self._available_vector = None
        self._total_vector = None

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def get_process(self, process_id: str) -> Process:
        """Return the process or raise InvalidReference."""
        process = self.processes.get(process_id)
        if process is None:
            raise InvalidReference(f"Unknown process {process_id}")
        return process

    def get_resource(self, resource_id: str) -> Resource:
        """Return the resource or raise InvalidReference."""
        resource = self.resources.get(resource_id)
        if resource is None:
            raise InvalidReference(f"Unknown resource {resource_id}")
        return resource

    def available(self, resource_id: str) -> int:
        return self.get_resource(resource_id).available_instances

    def holders_of(self, resource_id: str) -> List[str]:
        return list(self.get_resource(resource_id).allocated_to)

    def next_process_id(self) -> str:
        """Suggest the next free process id (highest number + 1)."""
        return f"P{_highest_number(self.processes) + 1}"

    def next_resource_id(self) -> str:
        """Suggest the next free resource id (highest number + 1)."""
        return f"R{_highest_number(self.resources) + 1}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def add_process(self, process_id: str, name: Optional[str] = None, priority: int = 1) -> Process:
        """
        Create a process with no holdings and no outstanding request.

        Raises:
            InvalidAction: If the id format or priority is invalid
            DuplicateId: If the id already exists
        """
        with self._lock:
            if not isinstance(process_id, str) or not PROCESS_ID_PATTERN.match(process_id):
                raise InvalidAction(
                    f"Process ID must be in format 'P' followed by a number (e.g., P1, P2), got {process_id!r}"
                )
            if process_id in self.processes:
                raise DuplicateId(f"Process ID {process_id} already exists")
            if isinstance(priority, bool) or not isinstance(priority, int) or priority < 1:
                raise InvalidAction(f"{process_id}: priority must be a positive integer, got {priority!r}")

            process = Process(
                process_id=process_id,
                name=name or f"Process {process_id[1:]}",
                priority=priority
            )
            self.processes[process_id] = process
            self._commit(f"after adding {process_id}")
            return process

    def add_resource(
        self,
        resource_id: str,
        name: Optional[str] = None,
        kind=ResourceKind.EXCLUSIVE,
        instances: int = 1
    ) -> Resource:
        """
        Create a resource with all units free.

        Args:
            kind: ResourceKind or its string value ("exclusive"/"sharable")

        Raises:
            InvalidAction: If the id format, kind or instance count is invalid
            DuplicateId: If the id already exists
        """
        with self._lock:
            if not isinstance(resource_id, str) or not RESOURCE_ID_PATTERN.match(resource_id):
                raise InvalidAction(
                    f"Resource ID must be in format 'R' followed by a number (e.g., R1, R2), got {resource_id!r}"
                )
            if resource_id in self.resources:
                raise DuplicateId(f"Resource ID {resource_id} already exists")
            kind = _parse_kind(resource_id, kind)
            if isinstance(instances, bool) or not isinstance(instances, int) or instances < 1:
                raise InvalidAction(f"{resource_id}: instances must be an integer >= 1, got {instances!r}")

            resource = Resource(
                resource_id=resource_id,
                name=name or f"Resource {resource_id[1:]}",
                kind=kind,
                instances=instances
            )
            self.resources[resource_id] = resource
            self._commit(f"after adding {resource_id}")
            return resource

    def remove_process(self, process_id: str) -> List[str]:
        """
        Release everything the process holds, drop its queue membership and
        delete it.

        Returns:
            Resource ids whose units were released
        """
        with self._lock:
            process = self.get_process(process_id)
            released = list(process.held)
            for rid in released:
                self.resources[rid].allocated_to.remove(process_id)
            if process.waiting_for is not None:
                self.resources[process.waiting_for].waiting_queue.remove(process_id)
            del self.processes[process_id]
            self._commit(f"after removing {process_id}")
            return released

    def remove_resource(self, resource_id: str) -> Resource:
        """
        Take the resource away from all holders, clear every waiter's request
        and delete it.
        """
        with self._lock:
            resource = self.get_resource(resource_id)
            for pid in resource.allocated_to:
                self.processes[pid].held.remove(resource_id)
            for pid in resource.waiting_queue:
                self.processes[pid].waiting_for = None
            del self.resources[resource_id]
            self._commit(f"after removing {resource_id}")
            return resource

    # ------------------------------------------------------------------
    # Allocation operations
    # ------------------------------------------------------------------

    def request(self, process_id: str, resource_id: str) -> None:
        """
        Record an outstanding request: the process joins the resource's FIFO
        waiting queue.

        Raises:
            InvalidReference: Unknown process or resource
            AlreadyWaiting: The process already has an outstanding request
            InvalidAction: The process already holds the resource
        """
        with self._lock:
            process = self.get_process(process_id)
            resource = self.get_resource(resource_id)
            if process.waiting_for is not None:
                raise AlreadyWaiting(
                    f"{process_id} is already waiting for {process.waiting_for}"
                )
            if process.holds(resource_id):
                raise InvalidAction(f"{process_id} already holds {resource_id}")

            process.waiting_for = resource_id
            resource.waiting_queue.append(process_id)
            self._commit(f"after {process_id} requested {resource_id}")

    def allocate(self, resource_id: str, process_id: str) -> None:
        """
        Grant one unit of the resource to the process.

        Clears the process's outstanding request if it was for this resource.

        Raises:
            InvalidReference: Unknown process or resource
            CapacityExceeded: All units are allocated
            InvalidAction: The process already holds the resource
        """
        with self._lock:
            resource = self.get_resource(resource_id)
            process = self.get_process(process_id)
            if process.holds(resource_id):
                raise InvalidAction(f"{process_id} already holds {resource_id}")
            if not resource.has_capacity():
                raise CapacityExceeded(
                    f"Cannot allocate more than {resource.instances} process(es) to {resource_id}"
                )

            resource.allocated_to.append(process_id)
            process.held.append(resource_id)
            if process.waiting_for == resource_id:
                process.waiting_for = None
                resource.waiting_queue.remove(process_id)
            process.blocked = False
            self._commit(f"after allocating {resource_id} to {process_id}")

    def release(self, resource_id: str, process_id: str) -> None:
        """
        Return one unit of the resource from the process.

        Raises:
            InvalidReference: Unknown process or resource
            NotHolding: The process does not hold the resource
        """
        with self._lock:
            resource = self.get_resource(resource_id)
            process = self.get_process(process_id)
            if not process.holds(resource_id):
                raise NotHolding(f"{process_id} does not hold {resource_id}")

            resource.allocated_to.remove(process_id)
            process.held.remove(resource_id)
            self._commit(f"after {process_id} released {resource_id}")

    def grant_waiting(self, resource_id: str) -> List[str]:
        """
        Grant free units of a resource to waiting processes in FIFO order.

        Returns:
            Process ids granted, in grant order
        """
        with self._lock:
            resource = self.get_resource(resource_id)
            granted = []
            while resource.has_capacity() and resource.waiting_queue:
                head = resource.waiting_queue[0]
                self.allocate(resource_id, head)
                granted.append(head)
            return granted

    def grant_all_waiting(self) -> Dict[str, List[str]]:
        """Run grant_waiting for every resource (store order); returns only non-empty grants."""
        with self._lock:
            grants = {}
            for rid in list(self.resources):
                granted = self.grant_waiting(rid)
                if granted:
                    grants[rid] = granted
            return grants

    def set_blocked(self, process_id: str, blocked: bool = True) -> None:
        """Mark a process as blocked (used by preemption and observed feeds)."""
        with self._lock:
            self.get_process(process_id).blocked = blocked
            self._commit(f"after marking {process_id} blocked={blocked}")

    # ------------------------------------------------------------------
    # Deadlock state and derived status
    # ------------------------------------------------------------------

    def record_detection(self, report: DeadlockReport) -> bool:
        """
        Cache a detection report as the current deadlock state.

        Reports computed from an older revision are ignored.

        Returns:
            True if the report was recorded
        """
        with self._lock:
            if report.revision != self.revision:
                return False
            self.deadlock_state = report
            return True

    def invalidate(self) -> None:
        """Forget the cached deadlock state."""
        self.deadlock_state = None

    def advance_step(self) -> int:
        """Advance logical simulation time (does not touch allocations)."""
        with self._lock:
            self.step += 1
            return self.step

    def status_of(self, process_id: str) -> ProcessStatus:
        """
        Derive a process's status from its records and the last deadlock state.
        """
        process = self.get_process(process_id)
        if self.deadlock_state is not None and self.deadlock_state.involves(process_id):
            return ProcessStatus(ProcessState.DEADLOCKED)
        if process.blocked and not process.held:
            return ProcessStatus(ProcessState.BLOCKED)
        if process.waiting_for is not None:
            return ProcessStatus(ProcessState.WAITING, process.waiting_for)
        return ProcessStatus(ProcessState.RUNNING)

    def statuses(self) -> Dict[str, ProcessStatus]:
        return {pid: self.status_of(pid) for pid in self.processes}

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> "AllocationStore":
        """
        Create an independent copy of the current state.

        Detection and risk assessment run against snapshots so they never see a
        half-applied mutation.
        """
        with self._lock:
            copy = AllocationStore(step=self.step)
            copy.processes = {pid: p.copy() for pid, p in self.processes.items()}
            copy.resources = {rid: r.copy() for rid, r in self.resources.items()}
            copy.revision = self.revision
            copy.deadlock_state = self.deadlock_state
            return copy

    def replace_with(self, other: "AllocationStore") -> None:
        """
        Atomically replace all records with those of another store
        (used when ingesting a complete external snapshot).
        """
        with self._lock:
            other.assert_invariants("in replacement state")
            self.processes = {pid: p.copy() for pid, p in other.processes.items()}
            self.resources = {rid: r.copy() for rid, r in other.resources.items()}
            self._commit("after replacing state")

    def clear(self) -> None:
        """Remove every process and resource."""
        with self._lock:
            self.processes = {}
            self.resources = {}
            self.step = 0
            self._commit("after clear")

    def _commit(self, context: str) -> None:
        """Finish a mutation: bump revision, drop caches, verify invariants."""
        self.revision += 1
        self.deadlock_state = None
        self.refresh_matrices()
        self.assert_invariants(context)

    # ------------------------------------------------------------------
    # Invariants and display
    # ------------------------------------------------------------------

    def assert_invariants(self, context: str = "") -> None:
        """Verify the allocation invariants.

        Args:
            context: Description of when this check is being run (for error messages)

        Raises:
            AssertionError: If any invariant is violated
        """
        queued = {}
        for rid, resource in self.resources.items():
            assert len(resource.allocated_to) <= resource.instances, (
                f"Capacity violated for {rid} {context}\n"
                f"  Holders: {resource.allocated_to}, Instances: {resource.instances}"
            )
            assert len(set(resource.allocated_to)) == len(resource.allocated_to), (
                f"Duplicate holder in {rid} {context}: {resource.allocated_to}"
            )
            for pid in resource.allocated_to:
                assert pid in self.processes and rid in self.processes[pid].held, (
                    f"{rid} lists holder {pid} that does not hold it {context}"
                )
            for pid in resource.waiting_queue:
                assert pid not in queued, (
                    f"{pid} queued on both {queued[pid]} and {rid} {context}"
                )
                queued[pid] = rid
                assert pid in self.processes and self.processes[pid].waiting_for == rid, (
                    f"{rid} queues {pid} whose request is not {rid} {context}"
                )

        for pid, process in self.processes.items():
            for rid in process.held:
                assert rid in self.resources and pid in self.resources[rid].allocated_to, (
                    f"{pid} holds {rid} but {rid} does not list it {context}"
                )
            if process.waiting_for is not None:
                assert queued.get(pid) == process.waiting_for, (
                    f"{pid} waits for {process.waiting_for} but is not queued there {context}"
                )

    def display(self) -> str:
        """
        Generate readable string representation of the allocation state.

        Returns:
            Formatted string showing statuses, available units and matrices
        """
        output = []
        output.append("\n" + "="*60)
        output.append(f"ALLOCATION STATE (step {self.step}, revision {self.revision})")
        output.append("="*60)

        output.append("\nProcess States:")
        for pid, process in self.processes.items():
            output.append(
                f"  {pid}: {str(self.status_of(pid)):16} "
                f"(priority={process.priority}, held={process.held})"
            )

        output.append("\nResources:")
        for rid, resource in self.resources.items():
            output.append(
                f"  {rid}: {resource.kind.value:9} {resource.available_instances}/{resource.instances} free, "
                f"holders={resource.allocated_to}, queue={resource.waiting_queue}"
            )

        header = "     " + " ".join([f"{rid:>4}" for rid in self.resources])
        output.append("\nAllocation Matrix:")
        output.append(header)
        for i, pid in enumerate(self.processes):
            row = f"  {pid}: " + " ".join([f"{v:4}" for v in self.allocation_matrix[i]])
            output.append(row)

        output.append("\nRequest Matrix (Pending):")
        output.append(header)
        for i, pid in enumerate(self.processes):
            row = f"  {pid}: " + " ".join([f"{v:4}" for v in self.request_matrix[i]])
            output.append(row)

        output.append("\n" + "="*60)
        return "\n".join(output)


def _parse_kind(resource_id: str, kind) -> ResourceKind:
    if isinstance(kind, ResourceKind):
        return kind
    try:
        return ResourceKind(str(kind).lower())
    except ValueError:
        raise InvalidAction(
            f"{resource_id}: kind must be 'exclusive' or 'sharable', got {kind!r}"
        )


def _highest_number(ids) -> int:
    highest = 0
    for identifier in ids:
        digits = identifier[1:]
        if digits.isdigit():
            highest = max(highest, int(digits))
    return highest
