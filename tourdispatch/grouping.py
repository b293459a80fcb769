# tourdispatch/grouping.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from .model import CHARTER, SHARED, Booking, HopperGroup, TourRun, guests_of, tour_run_key


def charter_run_key(booking: Booking) -> str:
    return f"{booking.tour_run_key}|charter:{booking.id}"


def _check_same_guide(bookings: List[Booking]) -> Optional[str]:
    guide_ids = {b.guide_id for b in bookings}
    if len(guide_ids) > 1:
        raise ValueError(f"bookings span several guides: {sorted(str(g) for g in guide_ids)}")
    return next(iter(guide_ids)) if guide_ids else None


def group_bookings_into_tour_runs(bookings: Iterable[Booking]) -> List[TourRun]:
    """Group one guide's bookings into tour runs.

    - shared bookings bucket by (tour_id, start_time)
    - every charter booking is its own run, even when tour/time match
    - booking_ids keep input order; guest_count sums members
    - runs come back sorted by (start, key) so output does not depend on
      input order beyond member order inside a run
    """
    items = list(bookings)
    guide_id = _check_same_guide(items)

    buckets: Dict[str, List[Booking]] = {}
    seen: set[str] = set()
    for b in items:
        if b.id in seen:
            raise ValueError(f"booking listed twice: {b.id}")
        seen.add(b.id)
        key = charter_run_key(b) if b.is_charter else tour_run_key(b.tour_id, b.start_time)
        buckets.setdefault(key, []).append(b)

    runs: List[TourRun] = []
    for key, members in buckets.items():
        first = members[0]
        # A shared bucket's end follows its longest member.
        duration = max(int(m.tour_duration_min) for m in members)
        start = first.start_min
        runs.append(
            TourRun(
                key=key,
                guide_id=guide_id,
                tour_id=first.tour_id,
                tour_name=first.tour_name,
                start_time=first.start_time,
                start_min=start,
                end_min=start + duration,
                guest_count=guests_of(members),
                booking_ids=tuple(m.id for m in members),
                experience_mode=CHARTER if first.is_charter else SHARED,
            )
        )

    runs.sort(key=lambda r: (r.start_min, r.key))
    return runs


def group_unassigned(bookings: Iterable[Booking]) -> List[HopperGroup]:
    """Cluster unassigned bookings for the pool.

    Shared bookings share a group per tour run key ("run_<key>"); each
    charter booking is its own group ("charter_<id>"). Sorted by tour time.
    """
    groups: Dict[str, Tuple[Booking, List[Booking]]] = {}
    for b in bookings:
        if b.guide_id is not None:
            continue
        gid = f"charter_{b.id}" if b.is_charter else f"run_{b.tour_run_key}"
        if gid not in groups:
            groups[gid] = (b, [])
        groups[gid][1].append(b)

    out: List[HopperGroup] = []
    for gid, (first, members) in groups.items():
        out.append(
            HopperGroup(
                id=gid,
                tour_run_key=first.tour_run_key,
                tour_id=first.tour_id,
                tour_name=first.tour_name,
                tour_time=first.start_time,
                is_charter=first.is_charter,
                booking_ids=tuple(m.id for m in members),
                total_guests=guests_of(members),
            )
        )
    out.sort(key=lambda g: (g.tour_time, g.id))
    return out
