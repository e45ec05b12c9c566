"""
External process feed adapter.

An observer supplies process snapshots from some outside monitoring source;
ingest_snapshots maps them 1:1 onto the allocation store. Nothing here talks
to the operating system: platform-specific observers live outside the core
and only need to implement ProcessObserver.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from models.allocation_store import AllocationStore, PROCESS_ID_PATTERN
from models.errors import InvalidAction, InvalidReference


OBSERVED_STATES = ("running", "waiting", "blocked", "deadlocked")


class FeedError(Exception):
    """Exception raised when a feed source cannot be read or is malformed."""
    pass


@dataclass
class ProcessSnapshot:
    """
    One process as reported by an external observer.

    Attributes:
        pid: Numeric pid or a process id such as "P7"
        name: Display name
        held_resource_ids: Resources the process holds
        waiting_resource_id: Resource the process waits on, if any
        observed_state: running, waiting, blocked or deadlocked (advisory only)
    """
    pid: Union[int, str]
    name: str
    held_resource_ids: List[str] = field(default_factory=list)
    waiting_resource_id: Optional[str] = None
    observed_state: str = "running"

    @property
    def process_id(self) -> str:
        """Internal process id for this snapshot."""
        if isinstance(self.pid, int) and not isinstance(self.pid, bool):
            return f"P{self.pid}"
        if isinstance(self.pid, str) and PROCESS_ID_PATTERN.match(self.pid):
            return self.pid
        if isinstance(self.pid, str) and self.pid.isdigit():
            return f"P{self.pid}"
        raise InvalidAction(f"Cannot map feed pid {self.pid!r} to a process id")

    @classmethod
    def from_dict(cls, record: dict) -> "ProcessSnapshot":
        """Build from a feed record using the external field names."""
        try:
            return cls(
                pid=record['pid'],
                name=record.get('name', str(record['pid'])),
                held_resource_ids=list(record.get('heldResourceIds', record.get('held_resource_ids', []))),
                waiting_resource_id=record.get('waitingResourceId', record.get('waiting_resource_id')),
                observed_state=str(record.get('observedState', record.get('observed_state', 'running'))).lower()
            )
        except KeyError as e:
            raise FeedError(f"Feed record missing {e}: {record}")


class ProcessObserver(ABC):
    """Source of process snapshots."""

    @abstractmethod
    def observe_processes(self) -> List[ProcessSnapshot]:
        raise NotImplementedError


class StaticProcessObserver(ProcessObserver):
    """Observer returning a fixed, manually supplied list of snapshots."""

    def __init__(self, snapshots: Iterable[ProcessSnapshot]):
        self.snapshots = list(snapshots)

    def observe_processes(self) -> List[ProcessSnapshot]:
        return list(self.snapshots)


class JsonFeedObserver(ProcessObserver):
    """Observer re-reading a JSON array of feed records on every call."""

    def __init__(self, file_path: str):
        self.file_path = file_path

    def observe_processes(self) -> List[ProcessSnapshot]:
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                records = json.load(f)
        except FileNotFoundError:
            raise FeedError(f"Feed file not found: {self.file_path}")
        except json.JSONDecodeError as e:
            raise FeedError(f"Invalid JSON in feed file: {e}")

        if not isinstance(records, list):
            raise FeedError("Feed file must contain a JSON array of process records")
        return [ProcessSnapshot.from_dict(record) for record in records]


def ingest_snapshots(
    store: AllocationStore,
    snapshots: Iterable[ProcessSnapshot],
    create_missing_resources: bool = False
) -> List[str]:
    """
    Replace the store's process table with the observed processes.

    Resources are kept (their allocations and queues rebuilt from the feed).
    Processes missing from the feed are removed; known processes keep their
    priority. The whole update is applied atomically: if any record is
    rejected, the store is left unchanged.

    Args:
        store: Store to update
        snapshots: Observed processes
        create_missing_resources: Create unknown resources as single-instance
            exclusive resources instead of rejecting them

    Returns:
        Process ids now in the store, in feed order

    Raises:
        InvalidReference: Unknown resource (when not creating missing ones)
        AllocationError: Any other inconsistency (duplicate pid, over-allocation)
    """
    snapshots = list(snapshots)

    with store.lock:
        staged = AllocationStore(step=store.step)
        for rid, resource in store.resources.items():
            staged.add_resource(rid, name=resource.name, kind=resource.kind, instances=resource.instances)

        for snap in snapshots:
            referenced = list(snap.held_resource_ids)
            if snap.waiting_resource_id:
                referenced.append(snap.waiting_resource_id)
            for rid in referenced:
                if rid not in staged.resources:
                    if not create_missing_resources:
                        raise InvalidReference(f"Feed references unknown resource {rid}")
                    staged.add_resource(rid)

        for snap in snapshots:
            pid = snap.process_id
            existing = store.processes.get(pid)
            staged.add_process(
                pid,
                name=snap.name,
                priority=existing.priority if existing is not None else 1
            )

        for snap in snapshots:
            for rid in snap.held_resource_ids:
                staged.allocate(rid, snap.process_id)

        for snap in snapshots:
            if snap.waiting_resource_id:
                staged.request(snap.process_id, snap.waiting_resource_id)
            if snap.observed_state == "blocked":
                staged.set_blocked(snap.process_id, True)

        store.replace_with(staged)
        return staged.process_ids
