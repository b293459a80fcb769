"""Read projection: getDispatch response <-> DispatchSnapshot.

Response shape (fields the core reads; extra fields are ignored):

  {
    "date": "YYYY-MM-DD",
    "status": "optimized",
    "tourRuns": [
      {"key": "<tourId>|HH:MM", "time": "HH:MM",
       "tour": {"id": ..., "name": ..., "durationMinutes": 120},
       "bookings": [{"id", "customerName", "adultCount", "childCount",
                     "infantCount", "experienceMode", "pickupTime",
                     "pickupLocation", "pickupZone": {"name"}, "referenceNumber"}]}
    ],
    "timelines": [
      {"guide": {"id", "firstName", "lastName"}, "vehicleCapacity": 6,
       "isOutsourced": false,
       "segments": [{"type": "tour", "tourRunKey", "startTime", "bookingIds": [...]}]}
    ]
  }
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .grouping import group_bookings_into_tour_runs
from .model import OUTSOURCED_PREFIX, Booking, DispatchSnapshot, Guide, parse_experience_mode, tour_run_key
from .timeline import end_time
from .util.timeparse import parse_hhmm

JsonDict = Dict[str, Any]


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    return None


def _str_or_none(v: Any) -> Optional[str]:
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


def _guide_name(raw: JsonDict) -> str:
    name = _str_or_none(raw.get("name"))
    if name:
        return name
    first = raw.get("firstName") or ""
    last = raw.get("lastName") or ""
    return f"{first} {last}".strip() or "Guide"


def _parse_guide(timeline: JsonDict, idx: int) -> Guide:
    raw = timeline.get("guide")
    if not isinstance(raw, dict):
        raise ValueError(f"timelines[{idx}].guide must be an object")
    outsourced = bool(timeline.get("isOutsourced") or raw.get("isOutsourced"))
    name = _guide_name(raw)
    gid = _str_or_none(raw.get("id"))
    if gid is None:
        if not outsourced:
            raise ValueError(f"timelines[{idx}].guide.id must be a non-empty string")
        gid = f"{OUTSOURCED_PREFIX}{name}"
    capacity = _as_int(timeline.get("vehicleCapacity"))
    if capacity is not None and capacity < 0:
        raise ValueError(f"timelines[{idx}].vehicleCapacity must be >= 0")
    return Guide(
        id=gid,
        name=name,
        vehicle_capacity=None if outsourced else capacity,
        is_outsourced=outsourced,
        contact=_str_or_none(raw.get("contact")) or _str_or_none(raw.get("email")),
    )


def _collect_assignments(timelines: List[Any]) -> Tuple[List[Guide], Dict[str, Tuple[str, Optional[str]]]]:
    guides: List[Guide] = []
    assigned: Dict[str, Tuple[str, Optional[str]]] = {}
    for i, tl in enumerate(timelines):
        if not isinstance(tl, dict):
            raise ValueError(f"timelines[{i}] must be an object")
        guide = _parse_guide(tl, i)
        guides.append(guide)
        segments = tl.get("segments") or []
        if not isinstance(segments, list):
            raise ValueError(f"timelines[{i}].segments must be a list")
        for seg in segments:
            if not isinstance(seg, dict) or seg.get("type") != "tour":
                continue
            start = _str_or_none(seg.get("startTime"))
            for bid in seg.get("bookingIds") or []:
                if not isinstance(bid, str) or not bid:
                    continue
                if bid in assigned and assigned[bid][0] != guide.id:
                    raise ValueError(f"booking {bid} appears on two guides: {assigned[bid][0]}, {guide.id}")
                assigned[bid] = (guide.id, start)
    return guides, assigned


def build_snapshot(
    response: JsonDict,
    *,
    date: Optional[str] = None,
    default_duration_min: int = 120,
) -> DispatchSnapshot:
    """Build the client-side read projection from a getDispatch response."""
    if not isinstance(response, dict):
        raise TypeError(f"dispatch response must be dict, got {type(response).__name__}")

    runs = response.get("tourRuns") or []
    timelines = response.get("timelines") or []
    if not isinstance(runs, list):
        raise ValueError("tourRuns must be a list")
    if not isinstance(timelines, list):
        raise ValueError("timelines must be a list")

    guides, assigned = _collect_assignments(timelines)

    bookings: List[Booking] = []
    for i, run in enumerate(runs):
        if not isinstance(run, dict):
            raise ValueError(f"tourRuns[{i}] must be an object")
        tour = run.get("tour") if isinstance(run.get("tour"), dict) else {}
        tour_id = _str_or_none(tour.get("id")) or _str_or_none(run.get("tourId"))
        run_time = _str_or_none(run.get("time"))
        if tour_id is None or run_time is None:
            raise ValueError(f"tourRuns[{i}] must include tour.id and time")
        parse_hhmm(run_time)
        duration = _as_int(tour.get("durationMinutes")) or int(default_duration_min)
        tour_name = _str_or_none(tour.get("name")) or "Tour"

        for j, raw in enumerate(run.get("bookings") or []):
            if not isinstance(raw, dict):
                raise ValueError(f"tourRuns[{i}].bookings[{j}] must be an object")
            bid = _str_or_none(raw.get("id"))
            if bid is None:
                raise ValueError(f"tourRuns[{i}].bookings[{j}].id must be a non-empty string")
            adults = _as_int(raw.get("adultCount"))
            children = _as_int(raw.get("childCount")) or 0
            infants = _as_int(raw.get("infantCount")) or 0
            if adults is None:
                total = _as_int(raw.get("totalParticipants")) or 0
                adults = max(0, total - children - infants)
            zone = raw.get("pickupZone")
            guide_id, seg_start = assigned.get(bid, (None, None))
            bookings.append(
                Booking(
                    id=bid,
                    customer_name=_str_or_none(raw.get("customerName")) or "",
                    tour_id=tour_id,
                    tour_name=tour_name,
                    start_time=seg_start or run_time,
                    tour_duration_min=_as_int(raw.get("tourDurationMinutes")) or duration,
                    experience_mode=parse_experience_mode(raw.get("experienceMode")),
                    guide_id=guide_id,
                    adult_count=adults,
                    child_count=children,
                    infant_count=infants,
                    pickup_time=_str_or_none(raw.get("pickupTime")),
                    pickup_location=_str_or_none(raw.get("pickupLocation")),
                    pickup_zone=_str_or_none(zone.get("name")) if isinstance(zone, dict) else _str_or_none(zone),
                    reference=_str_or_none(raw.get("referenceNumber")),
                )
            )

    known = {b.id for b in bookings}
    missing = sorted(set(assigned) - known)
    if missing:
        raise ValueError(f"timeline segments reference unknown bookings: {missing}")

    return DispatchSnapshot(
        date=date or str(response.get("date") or ""),
        bookings=tuple(bookings),
        guides=tuple(guides),
        status=str(response.get("status") or "pending"),
    )


def _booking_to_dict(b: Booking) -> JsonDict:
    return {
        "id": b.id,
        "referenceNumber": b.reference,
        "customerName": b.customer_name,
        "adultCount": b.adult_count,
        "childCount": b.child_count,
        "infantCount": b.infant_count,
        "totalParticipants": b.guest_count,
        "experienceMode": b.experience_mode,
        "tourDurationMinutes": b.tour_duration_min,
        "pickupTime": b.pickup_time,
        "pickupLocation": b.pickup_location,
        "pickupZone": {"name": b.pickup_zone} if b.pickup_zone else None,
    }


def snapshot_to_dispatch(snapshot: DispatchSnapshot) -> JsonDict:
    """Render a snapshot back into the getDispatch response shape."""
    runs: Dict[str, JsonDict] = {}
    for b in snapshot.bookings:
        key = tour_run_key(b.tour_id, b.start_time)
        if key not in runs:
            runs[key] = {
                "key": key,
                "time": b.start_time,
                "tour": {"id": b.tour_id, "name": b.tour_name, "durationMinutes": b.tour_duration_min},
                "bookings": [],
            }
        runs[key]["bookings"].append(_booking_to_dict(b))

    timelines: List[JsonDict] = []
    for g in snapshot.guides:
        members = snapshot.bookings_for_guide(g.id)
        segments = []
        for r in group_bookings_into_tour_runs(members):
            segments.append(
                {
                    "type": "tour",
                    "tourRunKey": r.key,
                    "tour": {"id": r.tour_id, "name": r.tour_name},
                    "startTime": r.start_time,
                    "endTime": end_time(r.start_time, r.duration_min),
                    "durationMinutes": r.duration_min,
                    "bookingIds": list(r.booking_ids),
                    "guestCount": r.guest_count,
                    "experienceMode": r.experience_mode,
                }
            )
        guide: JsonDict = {"id": g.id, "name": g.name}
        if g.contact:
            guide["contact"] = g.contact
        timelines.append(
            {
                "guide": guide,
                "vehicleCapacity": g.vehicle_capacity,
                "isOutsourced": g.is_outsourced,
                "totalGuests": sum(b.guest_count for b in members),
                "segments": segments,
            }
        )

    return {
        "date": snapshot.date,
        "status": snapshot.status,
        "tourRuns": sorted(runs.values(), key=lambda r: (r["time"], r["key"])),
        "timelines": timelines,
    }
