"""tourdispatch.api

Stable *library* entrypoint for tourdispatch.

Policy:
  - Only names listed in __all__ are considered public API.
  - Everything else is internal and may change without notice.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tourdispatch.changes import (
    AssignChange,
    BatchResult,
    Change,
    ReassignChange,
    TimeShiftChange,
    UnassignChange,
    change_from_dict,
    change_to_dict,
    changes_from_dicts,
    changes_to_dicts,
)
from tourdispatch.config import DispatchConfig, TimelineConfig
from tourdispatch.drag import (
    AssignIntent,
    DragMachine,
    GroupAssignIntent,
    ReassignIntent,
    TimeShiftIntent,
    UnassignIntent,
)
from tourdispatch.errors import (
    ChangeContractError,
    ConfigError,
    DispatchError,
    DragInProgressError,
    DropDeniedError,
    EmptyHistoryError,
    InvariantError,
    MutationInFlightError,
    NoActiveDragError,
    RemoteError,
    RemoteMutationError,
)
from tourdispatch.grouping import group_bookings_into_tour_runs, group_unassigned
from tourdispatch.keyboard import KeyEvent, handle_key
from tourdispatch.layout import layout_lanes
from tourdispatch.model import (
    Booking,
    DispatchSnapshot,
    DragState,
    DropValidation,
    Guide,
    HopperGroup,
    TourRun,
)
from tourdispatch.oplog import Operation, OperationLog, build_operation
from tourdispatch.projection import build_snapshot, snapshot_to_dispatch
from tourdispatch.remote import HttpDispatchClient, InMemoryDispatchBackend
from tourdispatch.session import BestFitCandidate, DispatchSession, OverrideRecord
from tourdispatch.timeline import hour_markers, position_to_time, shift_start_time, snap_minutes, time_to_percent
from tourdispatch.util.timeparse import format_time_label
from tourdispatch.validate import DraggedBooking, can_override, dragged_from_bookings, validate_drop

JsonPath = Union[str, Path]
Dispatch = Dict[str, Any]


def load_dispatch_json(path: JsonPath) -> Dispatch:
    """Load a getDispatch response saved as JSON."""
    p = Path(path)
    obj = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise ValueError(f"{p}: dispatch JSON must be an object")
    return obj


def load_snapshot(path: JsonPath, *, date: Optional[str] = None) -> DispatchSnapshot:
    return build_snapshot(load_dispatch_json(path), date=date)


__all__ = [
    "load_dispatch_json",
    "load_snapshot",
    "Booking",
    "Guide",
    "TourRun",
    "DragState",
    "DropValidation",
    "HopperGroup",
    "DispatchSnapshot",
    "build_snapshot",
    "snapshot_to_dispatch",
    "group_bookings_into_tour_runs",
    "group_unassigned",
    "layout_lanes",
    "DraggedBooking",
    "dragged_from_bookings",
    "validate_drop",
    "can_override",
    "position_to_time",
    "snap_minutes",
    "time_to_percent",
    "hour_markers",
    "shift_start_time",
    "format_time_label",
    "DragMachine",
    "AssignIntent",
    "GroupAssignIntent",
    "TimeShiftIntent",
    "ReassignIntent",
    "UnassignIntent",
    "Change",
    "AssignChange",
    "UnassignChange",
    "ReassignChange",
    "TimeShiftChange",
    "BatchResult",
    "change_to_dict",
    "change_from_dict",
    "changes_to_dicts",
    "changes_from_dicts",
    "Operation",
    "OperationLog",
    "build_operation",
    "HttpDispatchClient",
    "InMemoryDispatchBackend",
    "DispatchSession",
    "OverrideRecord",
    "BestFitCandidate",
    "KeyEvent",
    "handle_key",
    "TimelineConfig",
    "DispatchConfig",
    "DispatchError",
    "ConfigError",
    "ChangeContractError",
    "InvariantError",
    "DragInProgressError",
    "NoActiveDragError",
    "EmptyHistoryError",
    "MutationInFlightError",
    "RemoteError",
    "RemoteMutationError",
    "DropDeniedError",
]
