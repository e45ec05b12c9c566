"""
Resource model for the Resource Allocation Graph Simulator.

Represents a resource with one or more instances, its current holders and the
FIFO queue of processes requesting it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ResourceKind(Enum):
    """Resource kinds. SHARABLE behaves as a counted resource."""
    EXCLUSIVE = "exclusive"
    SHARABLE = "sharable"


@dataclass
class Resource:
    """
    Represents a resource node in the resource allocation graph.

    Attributes:
        resource_id: Resource identifier (unique, e.g. "R1")
        name: Display name
        kind: EXCLUSIVE or SHARABLE
        instances: Total number of units
        allocated_to: Holder process ids in grant order (each at most once)
        waiting_queue: Requesting process ids in FIFO order

    Invariant:
        len(allocated_to) <= instances
    """
    resource_id: str
    name: str
    kind: ResourceKind = ResourceKind.EXCLUSIVE
    instances: int = 1
    allocated_to: List[str] = field(default_factory=list)
    waiting_queue: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate resource state."""
        if self.instances < 1:
            raise ValueError(f"Resource {self.resource_id}: instances must be at least 1")
        if len(self.allocated_to) > self.instances:
            raise ValueError(
                f"Resource {self.resource_id}: {len(self.allocated_to)} holders "
                f"exceed instances ({self.instances})"
            )

    @property
    def available_instances(self) -> int:
        """Units not currently allocated."""
        return self.instances - len(self.allocated_to)

    def has_capacity(self) -> bool:
        return len(self.allocated_to) < self.instances

    def usage(self) -> int:
        """Combined allocation + wait count (used for contention)."""
        return len(self.allocated_to) + len(self.waiting_queue)

    def copy(self) -> "Resource":
        """Independent copy (lists are not shared)."""
        return Resource(
            resource_id=self.resource_id,
            name=self.name,
            kind=self.kind,
            instances=self.instances,
            allocated_to=self.allocated_to.copy(),
            waiting_queue=self.waiting_queue.copy()
        )
