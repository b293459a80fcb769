"""Drop validation for a booking dragged onto a guide lane.

Rules are checked in order and the first match wins:

  1. no-op drop (dragged booking already alone at that time on that guide)
  2. an overlapping charter run that is not the dragged booking's own run
  3. a dragged charter with any other overlapping run
  4. a dragged shared booking overlapping a run of a different tour
  5. projected guests over vehicle capacity (overridable by the caller)

Exclusivity is reported before capacity: raising capacity can never fix it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .model import ALLOWED, CHARTER, EXPERIENCE_MODES, Booking, DropValidation, TourRun, guests_of
from .util.timeparse import hhmm_to_minutes

CHARTER_OCCUPIED = "charter_occupied"
CHARTER_CONFLICT = "charter_conflict"
DIFFERENT_TOUR = "different_tour"
CAPACITY_EXCEEDED = "capacity_exceeded"
DROP_REASONS = (CHARTER_OCCUPIED, CHARTER_CONFLICT, DIFFERENT_TOUR, CAPACITY_EXCEEDED)

# Only capacity problems may be overridden by an explicit confirmation.
OVERRIDABLE_REASONS = (CAPACITY_EXCEEDED,)


@dataclass(frozen=True)
class DraggedBooking:
    booking_ids: Tuple[str, ...]
    tour_id: str
    tour_duration_min: int
    guest_count: int
    experience_mode: str
    original_start_time: Optional[str] = None
    member_guests: Tuple[int, ...] = ()  # per booking id, same order

    def __post_init__(self) -> None:
        if not self.booking_ids:
            raise ValueError("DraggedBooking needs at least one booking id")
        if not self.member_guests:
            if len(self.booking_ids) > 1:
                raise ValueError("member_guests is required when several bookings are dragged")
            object.__setattr__(self, "member_guests", (int(self.guest_count),))
        if len(self.member_guests) != len(self.booking_ids):
            raise ValueError("member_guests must have one entry per booking id")
        if sum(self.member_guests) != int(self.guest_count):
            raise ValueError("member_guests must add up to guest_count")
        if self.experience_mode not in EXPERIENCE_MODES:
            raise ValueError(f"unknown experience mode: {self.experience_mode!r}")

    @property
    def id(self) -> str:
        return self.booking_ids[0]

    @property
    def is_charter(self) -> bool:
        return self.experience_mode == CHARTER


def dragged_from_bookings(bookings: Sequence[Booking]) -> DraggedBooking:
    """Collapse one or more bookings into the validator's view of a drag.

    A group counts as charter when any member is one; its window is the
    longest member duration.
    """
    if not bookings:
        raise ValueError("no bookings to drag")
    first = bookings[0]
    return DraggedBooking(
        booking_ids=tuple(b.id for b in bookings),
        tour_id=first.tour_id,
        tour_duration_min=max(int(b.tour_duration_min) for b in bookings),
        guest_count=guests_of(bookings),
        experience_mode=CHARTER if any(b.is_charter for b in bookings) else first.experience_mode,
        original_start_time=first.start_time,
        member_guests=tuple(b.guest_count for b in bookings),
    )


def _owns(run: TourRun, dragged: DraggedBooking) -> bool:
    return any(bid in run.booking_ids for bid in dragged.booking_ids)


def _already_counted(runs: Sequence[TourRun], dragged: DraggedBooking) -> int:
    """Guests of dragged members that already sit in one of runs."""
    inside = {bid for r in runs for bid in r.booking_ids}
    return sum(g for bid, g in zip(dragged.booking_ids, dragged.member_guests) if bid in inside)


def _deny(reason: str, message: str, run: Optional[TourRun] = None, **kw) -> DropValidation:
    return DropValidation(
        allowed=False,
        reason=reason,
        message=message,
        conflicting_run_key=run.key if run is not None else None,
        **kw,
    )


def validate_drop(
    tour_runs: Iterable[TourRun],
    dragged: DraggedBooking,
    target_time: str,
    guide_capacity: Optional[int],
) -> DropValidation:
    """Decide whether dragged may land on a lane at target_time.

    tour_runs: runs currently on the target guide's lane.
    guide_capacity: vehicle seats; None disables the capacity rule.
    """
    runs = list(tour_runs)
    start = hhmm_to_minutes(target_time)
    end = start + int(dragged.tour_duration_min)

    # 1) no-op: the dragged booking already sits alone at this time here.
    for r in runs:
        if r.start_min == start and set(r.booking_ids) == set(dragged.booking_ids):
            return ALLOWED

    overlapping: List[TourRun] = [r for r in runs if r.overlaps(start, end)]
    others = [r for r in overlapping if not _owns(r, dragged)]

    # 2) an existing charter owns this window.
    for r in others:
        if r.is_charter:
            return _deny(
                CHARTER_OCCUPIED,
                f"A charter ({r.tour_name} at {r.start_time}) already holds this time slot",
                r,
            )

    # 3) a charter needs the window to itself.
    if dragged.is_charter and others:
        r = others[0]
        return _deny(
            CHARTER_CONFLICT,
            f"Charter bookings need an exclusive slot; {r.tour_name} at {r.start_time} overlaps",
            r,
        )

    # 4) shared runs may only stack with the identical tour.
    for r in others:
        if r.tour_id != dragged.tour_id:
            return _deny(
                DIFFERENT_TOUR,
                f"Overlaps a different tour ({r.tour_name} at {r.start_time}); one vehicle runs one itinerary",
                r,
            )

    # 5) seats.
    existing = sum(r.guest_count for r in overlapping)
    prior = _already_counted(overlapping, dragged)
    projected = existing - prior + int(dragged.guest_count)
    if guide_capacity is not None and projected > int(guide_capacity):
        return _deny(
            CAPACITY_EXCEEDED,
            f"Would exceed vehicle capacity ({projected}/{guide_capacity})",
            projected_guests=projected,
            capacity=int(guide_capacity),
        )

    return DropValidation(
        allowed=True,
        projected_guests=projected,
        capacity=int(guide_capacity) if guide_capacity is not None else None,
    )


def can_override(validation: DropValidation) -> bool:
    return (not validation.allowed) and validation.reason in OVERRIDABLE_REASONS
