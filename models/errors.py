"""
Error types for the Resource Allocation Graph Simulator.

Every rejected store or resolution operation raises one of these and leaves
the allocation state unchanged.
"""


class AllocationError(ValueError):
    """Base class for rejected allocation-store and resolution operations."""
    pass


class InvalidReference(AllocationError):
    """Unknown process or resource id."""
    pass


class DuplicateId(AllocationError):
    """A process or resource with this id already exists."""
    pass


class CapacityExceeded(AllocationError):
    """All instances of the resource are already allocated."""
    pass


class AlreadyWaiting(AllocationError):
    """The process already has an outstanding request."""
    pass


class NotHolding(AllocationError):
    """The process does not hold the resource it tried to give up."""
    pass


class InvalidAction(AllocationError):
    """Operation is not valid in the current state (e.g. terminating a non-deadlocked process)."""
    pass
