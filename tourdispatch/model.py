# tourdispatch/model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .util.timeparse import hhmm_to_minutes

SHARED = "shared"
CHARTER = "charter"
EXPERIENCE_MODES = (SHARED, CHARTER)

# Spellings seen in upstream payloads for the shared mode.
_SHARED_ALIASES = {"shared", "join", "joined", "public", "group"}

OUTSOURCED_PREFIX = "outsourced:"


def parse_experience_mode(raw: Optional[str]) -> str:
    """Normalize an experience mode; missing values mean shared."""
    if raw is None:
        return SHARED
    s = str(raw).strip().lower()
    if not s or s in _SHARED_ALIASES:
        return SHARED
    if s in ("charter", "private"):
        return CHARTER
    raise ValueError(f"Unknown experience mode: {raw!r}")


def tour_run_key(tour_id: str, start_time: str) -> str:
    return f"{tour_id}|{start_time}"


@dataclass(frozen=True)
class Booking:
    id: str
    customer_name: str
    tour_id: str
    start_time: str  # "HH:MM", tour start for this booking
    tour_duration_min: int
    experience_mode: str = SHARED
    guide_id: Optional[str] = None  # None = unassigned pool
    adult_count: int = 0
    child_count: int = 0
    infant_count: int = 0
    tour_name: str = "Tour"
    pickup_time: Optional[str] = None
    pickup_location: Optional[str] = None
    pickup_zone: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self) -> None:
        if self.experience_mode not in EXPERIENCE_MODES:
            raise ValueError(f"experience_mode must be one of {EXPERIENCE_MODES}, got {self.experience_mode!r}")
        if int(self.tour_duration_min) <= 0:
            raise ValueError(f"booking {self.id}: tour_duration_min must be positive")
        for name in ("adult_count", "child_count", "infant_count"):
            if int(getattr(self, name)) < 0:
                raise ValueError(f"booking {self.id}: {name} must be >= 0")
        hhmm_to_minutes(self.start_time)

    @property
    def guest_count(self) -> int:
        return int(self.adult_count) + int(self.child_count) + int(self.infant_count)

    @property
    def is_charter(self) -> bool:
        return self.experience_mode == CHARTER

    @property
    def start_min(self) -> int:
        return hhmm_to_minutes(self.start_time)

    @property
    def end_min(self) -> int:
        return self.start_min + int(self.tour_duration_min)

    @property
    def tour_run_key(self) -> str:
        return tour_run_key(self.tour_id, self.start_time)


@dataclass(frozen=True)
class Guide:
    """A guide row. vehicle_capacity None means no seat limit (outsourced rows)."""

    id: str
    name: str
    vehicle_capacity: Optional[int] = None
    is_outsourced: bool = False
    contact: Optional[str] = None


@dataclass(frozen=True)
class TourRun:
    key: str
    guide_id: Optional[str]
    tour_id: str
    tour_name: str
    start_time: str
    start_min: int
    end_min: int
    guest_count: int
    booking_ids: Tuple[str, ...]
    experience_mode: str = SHARED

    @property
    def duration_min(self) -> int:
        return self.end_min - self.start_min

    @property
    def is_charter(self) -> bool:
        return self.experience_mode == CHARTER

    def overlaps(self, start_min: int, end_min: int) -> bool:
        return self.start_min < end_min and start_min < self.end_min


@dataclass(frozen=True)
class DragState:
    """What is being dragged and from where (source None = unassigned pool)."""

    bookings: Tuple[Booking, ...]
    source_guide_id: Optional[str]

    def __post_init__(self) -> None:
        if not self.bookings:
            raise ValueError("a drag needs at least one booking")
        first = self.bookings[0]
        for b in self.bookings[1:]:
            # Members move as one run; one previous time restores all of them.
            if (b.tour_id, b.start_time) != (first.tour_id, first.start_time):
                raise ValueError(
                    f"bookings dragged together must share tour and start time: "
                    f"{first.id} is {first.tour_id} at {first.start_time}, {b.id} is {b.tour_id} at {b.start_time}"
                )

    @property
    def booking(self) -> Booking:
        return self.bookings[0]

    @property
    def booking_ids(self) -> Tuple[str, ...]:
        return tuple(b.id for b in self.bookings)

    @property
    def guest_count(self) -> int:
        return sum(b.guest_count for b in self.bookings)

    @property
    def is_group(self) -> bool:
        return len(self.bookings) > 1


@dataclass(frozen=True)
class DropValidation:
    allowed: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    projected_guests: Optional[int] = None
    capacity: Optional[int] = None
    conflicting_run_key: Optional[str] = None


ALLOWED = DropValidation(allowed=True)


@dataclass(frozen=True)
class HopperGroup:
    """A cluster of unassigned bookings shown together in the pool."""

    id: str
    tour_run_key: str
    tour_id: str
    tour_name: str
    tour_time: str
    is_charter: bool
    booking_ids: Tuple[str, ...]
    total_guests: int

    @property
    def total_bookings(self) -> int:
        return len(self.booking_ids)


@dataclass(frozen=True)
class DispatchSnapshot:
    """Read projection of one dispatch day, refreshed after every mutation."""

    date: str
    bookings: Tuple[Booking, ...]
    guides: Tuple[Guide, ...]
    status: str = "pending"

    _by_booking: Dict[str, Booking] = field(init=False, repr=False, compare=False)
    _by_guide: Dict[str, Guide] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_booking: Dict[str, Booking] = {}
        for b in self.bookings:
            if b.id in by_booking:
                raise ValueError(f"duplicate booking id in snapshot: {b.id}")
            by_booking[b.id] = b
        by_guide = {g.id: g for g in self.guides}
        object.__setattr__(self, "_by_booking", by_booking)
        object.__setattr__(self, "_by_guide", by_guide)

    def booking(self, booking_id: str) -> Booking:
        try:
            return self._by_booking[booking_id]
        except KeyError:
            raise KeyError(f"unknown booking: {booking_id}") from None

    def guide(self, guide_id: str) -> Guide:
        try:
            return self._by_guide[guide_id]
        except KeyError:
            raise KeyError(f"unknown guide: {guide_id}") from None

    def has_guide(self, guide_id: str) -> bool:
        return guide_id in self._by_guide

    def bookings_for_guide(self, guide_id: str) -> List[Booking]:
        return [b for b in self.bookings if b.guide_id == guide_id]

    def unassigned_bookings(self) -> List[Booking]:
        return [b for b in self.bookings if b.guide_id is None]

    def guide_names(self) -> Dict[str, str]:
        return {g.id: g.name for g in self.guides}

    def assignments(self) -> Dict[str, Tuple[Optional[str], str]]:
        """booking id -> (guide id, start time); the state undo/redo must restore."""
        return {b.id: (b.guide_id, b.start_time) for b in self.bookings}


def guests_of(bookings: Iterable[Booking]) -> int:
    return sum(b.guest_count for b in bookings)


__all__ = [
    "SHARED",
    "CHARTER",
    "EXPERIENCE_MODES",
    "OUTSOURCED_PREFIX",
    "parse_experience_mode",
    "tour_run_key",
    "Booking",
    "Guide",
    "TourRun",
    "DragState",
    "DropValidation",
    "ALLOWED",
    "HopperGroup",
    "DispatchSnapshot",
    "guests_of",
]
