"""Drag state machine: idle <-> dragging.

Transitions are explicit method calls (start_drag, update_target, hover_pool,
commit, cancel) so any input layer can drive them. The machine never talks
to the remote service; a successful commit hands back a mutation intent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

from .config import TimelineConfig
from .errors import DragInProgressError, NoActiveDragError
from .model import ALLOWED, Booking, DragState, DropValidation
from .timeline import has_time_changed, position_to_time
from .validate import can_override

IDLE = "idle"
DRAGGING = "dragging"

# (drag, target guide id, target time) -> validation
Validator = Callable[[DragState, str, str], DropValidation]


@dataclass(frozen=True)
class AssignIntent:
    booking_id: str
    to_guide_id: str
    previous_start_time: Optional[str] = None
    new_start_time: Optional[str] = None  # set only when the drop also moved the time
    validation: DropValidation = ALLOWED
    overridden: bool = False

    @property
    def booking_ids(self) -> Tuple[str, ...]:
        return (self.booking_id,)


@dataclass(frozen=True)
class GroupAssignIntent:
    booking_ids: Tuple[str, ...]
    to_guide_id: str
    previous_start_time: Optional[str] = None
    new_start_time: Optional[str] = None
    validation: DropValidation = ALLOWED
    overridden: bool = False


@dataclass(frozen=True)
class TimeShiftIntent:
    booking_ids: Tuple[str, ...]
    guide_id: str
    previous_start_time: str
    new_start_time: str
    validation: DropValidation = ALLOWED
    overridden: bool = False


@dataclass(frozen=True)
class ReassignIntent:
    booking_ids: Tuple[str, ...]
    from_guide_id: str
    to_guide_id: str
    previous_start_time: Optional[str] = None
    new_start_time: Optional[str] = None  # set only when the drop also moved the time
    validation: DropValidation = ALLOWED
    overridden: bool = False


@dataclass(frozen=True)
class UnassignIntent:
    booking_ids: Tuple[str, ...]
    from_guide_id: str
    validation: DropValidation = ALLOWED
    overridden: bool = False


MutationIntent = Union[AssignIntent, GroupAssignIntent, TimeShiftIntent, ReassignIntent, UnassignIntent]


@dataclass(frozen=True)
class DropTarget:
    guide_id: Optional[str]  # None = the unassigned pool
    time: Optional[str] = None


class DragMachine:
    """Owns the single active DragState for a dispatch session."""

    def __init__(self, validator: Validator, timeline: Optional[TimelineConfig] = None) -> None:
        self._validator = validator
        self._timeline = timeline or TimelineConfig()
        self._drag: Optional[DragState] = None
        self._target: Optional[DropTarget] = None
        self._validation: Optional[DropValidation] = None

    @property
    def state(self) -> str:
        return DRAGGING if self._drag is not None else IDLE

    @property
    def drag(self) -> Optional[DragState]:
        return self._drag

    @property
    def target(self) -> Optional[DropTarget]:
        return self._target

    @property
    def validation(self) -> Optional[DropValidation]:
        return self._validation

    def start_drag(self, bookings: Sequence[Booking], source_guide_id: Optional[str]) -> DragState:
        if self._drag is not None:
            raise DragInProgressError(
                f"drag already active for {', '.join(self._drag.booking_ids)}; cancel or drop it first"
            )
        items = tuple(bookings)
        if not items:
            raise ValueError("start_drag needs at least one booking")
        for b in items:
            if b.guide_id != source_guide_id:
                raise ValueError(f"booking {b.id} is not on source {source_guide_id!r}")
        self._drag = DragState(bookings=items, source_guide_id=source_guide_id)
        self._target = None
        self._validation = None
        return self._drag

    def _require_drag(self) -> DragState:
        if self._drag is None:
            raise NoActiveDragError("no drag in progress")
        return self._drag

    def update_target(self, guide_id: str, offset_px: float, lane_width_px: float) -> DropValidation:
        """Pointer moved over a guide lane: snap the time and re-validate."""
        drag = self._require_drag()
        duration = max(int(b.tour_duration_min) for b in drag.bookings)
        time = position_to_time(offset_px, lane_width_px, duration, self._timeline)
        return self.update_target_time(guide_id, time)

    def update_target_time(self, guide_id: str, time: str) -> DropValidation:
        """Hover at an already-computed time (keyboard nudges, tests)."""
        drag = self._require_drag()
        own = drag.booking.start_time
        if not has_time_changed(own, time, self._timeline.snap_min):
            # Same snapped slot: the bookings keep their own start, so check that.
            time = own
        self._target = DropTarget(guide_id=guide_id, time=time)
        self._validation = self._validator(drag, guide_id, time)
        return self._validation

    def hover_pool(self) -> DropValidation:
        self._require_drag()
        self._target = DropTarget(guide_id=None)
        self._validation = ALLOWED
        return self._validation

    def leave_target(self) -> None:
        self._require_drag()
        self._target = None
        self._validation = None

    def cancel(self) -> None:
        self._require_drag()
        self._reset()

    def _reset(self) -> None:
        self._drag = None
        self._target = None
        self._validation = None

    def commit(self, *, override: bool = False) -> Optional[MutationIntent]:
        """Drop. Returns the mutation intent, or None for a no-op drop.

        A denied drop is a no-op unless override=True and the denial is a
        capacity problem. The machine is idle afterwards either way.
        """
        drag = self._require_drag()
        target = self._target
        validation = self._validation or ALLOWED
        try:
            if target is None:
                return None
            overridden = False
            if not validation.allowed:
                if not (override and can_override(validation)):
                    return None
                overridden = True
            return _intent_for(drag, target, validation, overridden, self._timeline.snap_min)
        finally:
            self._reset()


def _intent_for(
    drag: DragState,
    target: DropTarget,
    validation: DropValidation,
    overridden: bool,
    snap_min: int,
) -> Optional[MutationIntent]:
    ids = drag.booking_ids
    source = drag.source_guide_id
    prev_time = drag.booking.start_time
    time_changed = target.time is not None and has_time_changed(prev_time, target.time, snap_min)
    new_time = target.time if time_changed else None

    if target.guide_id is None:
        if source is None:
            return None
        return UnassignIntent(booking_ids=ids, from_guide_id=source, validation=validation, overridden=overridden)

    if source is None:
        if drag.is_group:
            return GroupAssignIntent(
                booking_ids=ids,
                to_guide_id=target.guide_id,
                previous_start_time=prev_time,
                new_start_time=new_time,
                validation=validation,
                overridden=overridden,
            )
        return AssignIntent(
            booking_id=ids[0],
            to_guide_id=target.guide_id,
            previous_start_time=prev_time,
            new_start_time=new_time,
            validation=validation,
            overridden=overridden,
        )

    if source == target.guide_id:
        if not time_changed:
            return None
        return TimeShiftIntent(
            booking_ids=ids,
            guide_id=source,
            previous_start_time=prev_time,
            new_start_time=target.time,
            validation=validation,
            overridden=overridden,
        )

    return ReassignIntent(
        booking_ids=ids,
        from_guide_id=source,
        to_guide_id=target.guide_id,
        previous_start_time=prev_time,
        new_start_time=new_time,
        validation=validation,
        overridden=overridden,
    )
