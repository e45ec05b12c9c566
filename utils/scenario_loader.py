"""
Scenario Loader for the Resource Allocation Graph Simulator.

Loads and validates JSON scenario files: the initial processes and resources,
their allocations and outstanding requests, and an optional list of
step-scheduled events.
"""

import json
from typing import Dict, List, Any, Tuple

from models.allocation_store import AllocationStore
from models.errors import AllocationError


EVENT_FIELDS = {
    'request': ('process', 'resource'),
    'allocate': ('process', 'resource'),
    'release': ('process', 'resource'),
    'add_process': ('process',),
    'remove_process': ('process',),
    'add_resource': ('resource',),
    'remove_resource': ('resource',),
}


class ScenarioLoadError(Exception):
    """Exception raised when scenario file cannot be loaded or is invalid."""
    pass


def load_scenario(file_path: str) -> Tuple[AllocationStore, Dict[int, List[Dict]]]:
    """
    Load scenario from JSON file.

    Args:
        file_path: Path to scenario JSON file

    Returns:
        Tuple of (AllocationStore, events_by_step)
        - AllocationStore: Initialized with processes, resources, holdings and requests
        - events_by_step: Dict mapping step number to list of events

    Raises:
        ScenarioLoadError: If file cannot be loaded or is invalid
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ScenarioLoadError(f"Scenario file not found: {file_path}")
    except json.JSONDecodeError as e:
        raise ScenarioLoadError(f"Invalid JSON in scenario file: {e}")

    return build_scenario(data)


def build_scenario(data: Dict[str, Any]) -> Tuple[AllocationStore, Dict[int, List[Dict]]]:
    """
    Build a store and event schedule from already-parsed scenario data.

    Raises:
        ScenarioLoadError: If the data is invalid
    """
    if not isinstance(data, dict):
        raise ScenarioLoadError("Scenario must be a JSON object")
    if 'processes' not in data:
        raise ScenarioLoadError("Scenario missing 'processes' field")
    if 'resources' not in data:
        raise ScenarioLoadError("Scenario missing 'resources' field")

    store = AllocationStore()
    try:
        # Resources first (holdings and requests refer to them)
        for res in data['resources']:
            _load_resource(store, res)
        for proc in data['processes']:
            _load_process(store, proc)
        # Allocations before requests so a request never targets a held resource by accident
        for proc in data['processes']:
            for rid in proc.get('held', []):
                store.allocate(rid, proc['id'])
        for proc in data['processes']:
            if proc.get('waiting_for'):
                store.request(proc['id'], proc['waiting_for'])
    except AllocationError as e:
        raise ScenarioLoadError(f"Invalid initial state: {e}")

    events_by_step = {}
    for event in data.get('events', []):
        _validate_event(event)
        events_by_step.setdefault(event['step'], []).append(event)

    return store, events_by_step


def _load_resource(store: AllocationStore, res: Dict) -> None:
    if 'id' not in res:
        raise ScenarioLoadError("Resource missing 'id' field")
    store.add_resource(
        res['id'],
        name=res.get('name'),
        kind=res.get('kind', 'exclusive'),
        instances=res.get('instances', 1)
    )


def _load_process(store: AllocationStore, proc: Dict) -> None:
    if 'id' not in proc:
        raise ScenarioLoadError("Process missing 'id' field")
    if not isinstance(proc.get('held', []), list):
        raise ScenarioLoadError(f"Process {proc['id']}: 'held' must be a list")
    store.add_process(
        proc['id'],
        name=proc.get('name'),
        priority=proc.get('priority', 1)
    )


def _validate_event(event: Dict) -> None:
    """
    Validate a scheduled event.

    Raises:
        ScenarioLoadError: If event is invalid
    """
    if 'step' not in event:
        raise ScenarioLoadError(f"Event missing 'step' field: {event}")
    if not isinstance(event['step'], int) or event['step'] < 0:
        raise ScenarioLoadError(f"Event step must be a non-negative integer: {event}")
    if 'type' not in event:
        raise ScenarioLoadError(f"Event missing 'type' field: {event}")

    event_type = event['type']
    if event_type not in EVENT_FIELDS:
        raise ScenarioLoadError(f"Unknown event type '{event_type}'")

    for name in EVENT_FIELDS[event_type]:
        if name not in event:
            raise ScenarioLoadError(f"{event_type} event missing '{name}': {event}")


def apply_event(store: AllocationStore, event: Dict) -> str:
    """
    Apply one scheduled event to the store.

    Returns:
        Description of the event, e.g. "P1 requests R2"

    Raises:
        AllocationError: If the store rejects the operation
    """
    event_type = event['type']
    pid = event.get('process')
    rid = event.get('resource')

    if event_type == 'request':
        store.request(pid, rid)
    elif event_type == 'allocate':
        store.allocate(rid, pid)
    elif event_type == 'release':
        store.release(rid, pid)
    elif event_type == 'add_process':
        store.add_process(pid, name=event.get('name'), priority=event.get('priority', 1))
    elif event_type == 'remove_process':
        store.remove_process(pid)
    elif event_type == 'add_resource':
        store.add_resource(
            rid,
            name=event.get('name'),
            kind=event.get('kind', 'exclusive'),
            instances=event.get('instances', 1)
        )
    else:
        store.remove_resource(rid)
    return describe_event(event)


def describe_event(event: Dict) -> str:
    """Description of an event without applying it (for rejected operations)."""
    pid = event.get('process', '?')
    rid = event.get('resource', '?')
    return {
        'request': f"{pid} requests {rid}",
        'allocate': f"{rid} allocated to {pid}",
        'release': f"{pid} releases {rid}",
        'add_process': f"{pid} created",
        'remove_process': f"{pid} removed",
        'add_resource': f"{rid} created",
        'remove_resource': f"{rid} removed",
    }[event['type']]


def get_scenario_description(file_path: str) -> str:
    """
    Get description from scenario file without full loading.

    Args:
        file_path: Path to scenario JSON file

    Returns:
        Description string, or empty string if not present
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data.get('description', '')
    except (OSError, json.JSONDecodeError):
        return ''
