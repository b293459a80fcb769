"""DispatchSession: the one object that owns drag state, history and the read projection.

Construct one per dispatch day and pass it to whatever drives input. Pure
decisions (grouping, validation, layout, time math) are delegated to their
modules; the session only wires them to the remote collaborator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .config import DispatchConfig
from .drag import DragMachine, DropTarget, MutationIntent
from .errors import ConfigError, DropDeniedError, MutationInFlightError
from .grouping import group_bookings_into_tour_runs, group_unassigned
from .layout import layout_lanes
from .model import ALLOWED, DispatchSnapshot, DragState, DropValidation, HopperGroup, TourRun
from .oplog import Operation, OperationLog, build_operation
from .projection import build_snapshot
from .remote import BatchApplier, DispatchSource, HttpDispatchClient, OutsourcedStaffing
from .timeline import normalize_start_time, shift_start_time
from .validate import can_override, dragged_from_bookings, validate_drop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideRecord:
    """Audit entry for a capacity-exceeded drop committed on explicit confirmation."""

    operation_id: str
    description: str
    booking_ids: Tuple[str, ...]
    guide_id: str
    projected_guests: Optional[int]
    capacity: Optional[int]


@dataclass(frozen=True)
class BestFitCandidate:
    guide_id: str
    guide_name: str
    projected_guests: int
    capacity: int

    @property
    def remaining_seats(self) -> int:
        return self.capacity - self.projected_guests


def _target_guide(intent: MutationIntent) -> Optional[str]:
    for attr in ("to_guide_id", "guide_id", "from_guide_id"):
        gid = getattr(intent, attr, None)
        if gid is not None:
            return gid
    return None


class DispatchSession:
    def __init__(
        self,
        source: DispatchSource,
        applier: BatchApplier,
        date: str,
        config: Optional[DispatchConfig] = None,
        *,
        staffing: Optional[OutsourcedStaffing] = None,
    ) -> None:
        self.config = config or DispatchConfig()
        self.date = date
        self._source = source
        self._staffing = staffing
        self._snapshot: Optional[DispatchSnapshot] = None
        self._overrides: List[OverrideRecord] = []
        self._drag = DragMachine(self._validate_drag, self.config.timeline)
        self._log = OperationLog(applier, date, max_history=self.config.max_history, refresh=self.refresh)

    @classmethod
    def over_http(cls, date: str, config: DispatchConfig) -> "DispatchSession":
        client = HttpDispatchClient.from_config(config)
        return cls(client, client, date, config, staffing=client)

    # -- read projection -------------------------------------------------

    def refresh(self) -> DispatchSnapshot:
        response = self._source.get_dispatch(self.date)
        self._snapshot = build_snapshot(
            response,
            date=self.date,
            default_duration_min=self.config.timeline.default_duration_min,
        )
        logger.debug("refreshed %s: %d bookings, %d guides", self.date, len(self._snapshot.bookings), len(self._snapshot.guides))
        return self._snapshot

    @property
    def snapshot(self) -> DispatchSnapshot:
        if self._snapshot is None:
            return self.refresh()
        return self._snapshot

    def guide_names(self) -> Dict[str, str]:
        return self.snapshot.guide_names()

    def runs_for_guide(self, guide_id: str) -> List[TourRun]:
        return group_bookings_into_tour_runs(self.snapshot.bookings_for_guide(guide_id))

    def lanes_for_guide(self, guide_id: str) -> List[List[TourRun]]:
        return layout_lanes(self.runs_for_guide(guide_id))

    def unassigned_groups(self) -> List[HopperGroup]:
        return group_unassigned(self.snapshot.bookings)

    # -- validation ------------------------------------------------------

    def validate_drop(self, drag: DragState, guide_id: str, time: str) -> DropValidation:
        guide = self.snapshot.guide(guide_id)
        if guide.is_outsourced:
            return ALLOWED
        dragged = dragged_from_bookings(drag.bookings)
        result = validate_drop(self.runs_for_guide(guide_id), dragged, time, guide.vehicle_capacity)
        if not result.allowed:
            logger.debug("drop of %s on %s at %s denied: %s", ",".join(dragged.booking_ids), guide_id, time, result.reason)
        return result

    def _validate_drag(self, drag: DragState, guide_id: str, time: str) -> DropValidation:
        return self.validate_drop(drag, guide_id, time)

    # -- drag ------------------------------------------------------------

    @property
    def is_dragging(self) -> bool:
        return self._drag.drag is not None

    @property
    def drag_state(self) -> Optional[DragState]:
        return self._drag.drag

    @property
    def drop_target(self) -> Optional[DropTarget]:
        return self._drag.target

    @property
    def current_validation(self) -> Optional[DropValidation]:
        return self._drag.validation

    def start_drag(self, booking_ids: Sequence[str]) -> DragState:
        if self.is_mutating:
            raise MutationInFlightError("cannot start a drag while a change-set is in flight")
        bookings = [self.snapshot.booking(bid) for bid in booking_ids]
        sources = {b.guide_id for b in bookings}
        if len(sources) > 1:
            raise ValueError("bookings dragged together must share one source guide")
        source = next(iter(sources)) if sources else None
        return self._drag.start_drag(bookings, source)

    def start_group_drag(self, group_id: str) -> DragState:
        for g in self.unassigned_groups():
            if g.id == group_id:
                return self.start_drag(g.booking_ids)
        raise KeyError(f"unknown unassigned group: {group_id}")

    def hover(self, guide_id: str, offset_px: float, lane_width_px: float) -> DropValidation:
        return self._drag.update_target(guide_id, offset_px, lane_width_px)

    def hover_time(self, guide_id: str, time: str) -> DropValidation:
        return self._drag.update_target_time(guide_id, time)

    def hover_pool(self) -> DropValidation:
        return self._drag.hover_pool()

    def leave_target(self) -> None:
        self._drag.leave_target()

    def cancel_drag(self) -> None:
        self._drag.cancel()

    def drop(self, *, override: bool = False) -> Optional[Operation]:
        """Commit the active drag. None means nothing was sent."""
        validation = self._drag.validation
        intent = self._drag.commit(override=override)
        if intent is None:
            if validation is not None and not validation.allowed:
                logger.debug("drop ignored: %s", validation.reason)
            return None
        return self._apply(intent)

    def _apply(self, intent: MutationIntent) -> Operation:
        op = build_operation(intent, self.snapshot.guide_names())
        self._log.commit(op)
        if intent.overridden:
            record = OverrideRecord(
                operation_id=op.id,
                description=op.description,
                booking_ids=tuple(intent.booking_ids),
                guide_id=_target_guide(intent) or "",
                projected_guests=intent.validation.projected_guests,
                capacity=intent.validation.capacity,
            )
            self._overrides.append(record)
            logger.warning(
                "capacity override: %s (%s/%s)", op.description, record.projected_guests, record.capacity
            )
        return op

    # -- direct mutations ------------------------------------------------

    def assign_bookings(
        self,
        booking_ids: Sequence[str],
        guide_id: str,
        *,
        time: Optional[str] = None,
        override: bool = False,
    ) -> Optional[Operation]:
        """Move bookings to a guide without a pointer; raises DropDeniedError on denial.

        time, when given, is snapped and clamped to the timeline first; the
        bookings keep their own start otherwise.
        """
        drag = self.start_drag(booking_ids)
        try:
            when = drag.booking.start_time
            if time is not None:
                duration = max(int(b.tour_duration_min) for b in drag.bookings)
                when = normalize_start_time(time, duration, self.config.timeline)
            validation = self.hover_time(guide_id, when)
        except Exception:
            self.cancel_drag()
            raise
        if not validation.allowed and not (override and can_override(validation)):
            self.cancel_drag()
            raise DropDeniedError(validation)
        return self.drop(override=override)

    def unassign(self, booking_ids: Sequence[str]) -> Optional[Operation]:
        self.start_drag(booking_ids)
        self.hover_pool()
        return self.drop()

    def nudge_run(self, guide_id: str, run_key: str, delta_min: int, *, override: bool = False) -> Optional[Operation]:
        """Shift a whole run on its own lane by delta_min, snapped and kept inside the window.

        Returns None when the shift snaps back to the current start.
        """
        run = self._find_run(guide_id, run_key)
        new_time = shift_start_time(run.start_time, delta_min, run.duration_min, self.config.timeline)
        if new_time == run.start_time:
            logger.debug("nudge of %s by %+d min is a no-op", run_key, int(delta_min))
            return None
        return self.assign_bookings(run.booking_ids, guide_id, time=new_time, override=override)

    def _find_run(self, guide_id: str, run_key: str) -> TourRun:
        for r in self.runs_for_guide(guide_id):
            if r.key == run_key:
                return r
        raise KeyError(f"no run {run_key} on guide {guide_id}")

    def suggest_best_fit(self, booking_ids: Sequence[str]) -> List[BestFitCandidate]:
        """Internal guides that accept the bookings at their own time, tightest fit first."""
        bookings = [self.snapshot.booking(bid) for bid in booking_ids]
        if not bookings:
            return []
        drag = DragState(bookings=tuple(bookings), source_guide_id=bookings[0].guide_id)
        out: List[BestFitCandidate] = []
        for g in self.snapshot.guides:
            if g.is_outsourced or g.vehicle_capacity is None or g.id == drag.source_guide_id:
                continue
            v = self.validate_drop(drag, g.id, drag.booking.start_time)
            if not v.allowed or v.projected_guests is None:
                continue
            out.append(
                BestFitCandidate(guide_id=g.id, guide_name=g.name, projected_guests=v.projected_guests, capacity=g.vehicle_capacity)
            )
        out.sort(key=lambda c: (c.remaining_seats, c.guide_name, c.guide_id))
        return out

    def assign_best_fit(self, booking_ids: Sequence[str]) -> Optional[Operation]:
        candidates = self.suggest_best_fit(booking_ids)
        if not candidates:
            logger.warning("no guide can take %s", ",".join(booking_ids))
            return None
        return self.assign_bookings(booking_ids, candidates[0].guide_id)

    def add_outsourced_guide(self, tour_run_key: str, name: str, contact: Optional[str] = None) -> Dict[str, object]:
        """Staff a run with an external guide. Not recorded in the undo history."""
        if self._staffing is None:
            raise ConfigError("this session has no outsourced-staffing backend")
        if self.is_mutating:
            raise MutationInFlightError("cannot staff a run while a change-set is in flight")
        try:
            result = self._staffing.add_outsourced_guide_to_run(self.date, tour_run_key, name, contact)
        finally:
            self.refresh()
        logger.info("outsourced guide %s staffed %s", name, tour_run_key)
        return result

    # -- history ---------------------------------------------------------

    @property
    def is_mutating(self) -> bool:
        return self._log.is_mutating

    @property
    def can_undo(self) -> bool:
        return self._log.can_undo

    @property
    def can_redo(self) -> bool:
        return self._log.can_redo

    @property
    def history(self) -> OperationLog:
        return self._log

    def undo(self) -> Operation:
        return self._log.undo()

    def redo(self) -> Operation:
        return self._log.redo()

    @property
    def overrides(self) -> Tuple[OverrideRecord, ...]:
        return tuple(self._overrides)
