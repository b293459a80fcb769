"""Batch-mutation change primitives and their wire codec.

The remote boundary accepts a list of tagged changes:

  {"type": "assign",     "bookingId", "toGuideId"}
  {"type": "unassign",   "bookingIds", "fromGuideId"}
  {"type": "reassign",   "bookingIds", "fromGuideId", "toGuideId"}
  {"type": "time-shift", "bookingIds", "guideId", "newStartTime"}

Each variant is its own frozen dataclass; code that consumes a Change matches
on the class and raises TypeError for anything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

from .errors import ChangeContractError
from .util.timeparse import parse_hhmm

ASSIGN = "assign"
UNASSIGN = "unassign"
REASSIGN = "reassign"
TIME_SHIFT = "time-shift"
CHANGE_TYPES = (ASSIGN, UNASSIGN, REASSIGN, TIME_SHIFT)

JsonDict = Dict[str, Any]


@dataclass(frozen=True)
class AssignChange:
    booking_id: str
    to_guide_id: str

    @property
    def type(self) -> str:
        return ASSIGN

    @property
    def booking_ids(self) -> Tuple[str, ...]:
        return (self.booking_id,)


@dataclass(frozen=True)
class UnassignChange:
    booking_ids: Tuple[str, ...]
    from_guide_id: str

    @property
    def type(self) -> str:
        return UNASSIGN


@dataclass(frozen=True)
class ReassignChange:
    booking_ids: Tuple[str, ...]
    from_guide_id: str
    to_guide_id: str

    @property
    def type(self) -> str:
        return REASSIGN


@dataclass(frozen=True)
class TimeShiftChange:
    booking_ids: Tuple[str, ...]
    guide_id: str
    new_start_time: str

    @property
    def type(self) -> str:
        return TIME_SHIFT


Change = Union[AssignChange, UnassignChange, ReassignChange, TimeShiftChange]


@dataclass(frozen=True)
class BatchResult:
    success: bool
    applied: int
    failed: int = 0
    errors: Tuple[str, ...] = ()

    def is_complete(self, requested: int) -> bool:
        return bool(self.success) and self.failed == 0 and self.applied >= requested


def change_to_dict(change: Change) -> JsonDict:
    if isinstance(change, AssignChange):
        return {"type": ASSIGN, "bookingId": change.booking_id, "toGuideId": change.to_guide_id}
    if isinstance(change, UnassignChange):
        return {"type": UNASSIGN, "bookingIds": list(change.booking_ids), "fromGuideId": change.from_guide_id}
    if isinstance(change, ReassignChange):
        return {
            "type": REASSIGN,
            "bookingIds": list(change.booking_ids),
            "fromGuideId": change.from_guide_id,
            "toGuideId": change.to_guide_id,
        }
    if isinstance(change, TimeShiftChange):
        return {
            "type": TIME_SHIFT,
            "bookingIds": list(change.booking_ids),
            "guideId": change.guide_id,
            "newStartTime": change.new_start_time,
        }
    raise TypeError(f"not a Change: {type(change).__name__}")


def _is_nonempty_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def _ids(obj: JsonDict, errs: List[str], label: str) -> Tuple[str, ...]:
    raw = obj.get("bookingIds")
    if not isinstance(raw, list) or not raw:
        errs.append(f"{label}: bookingIds must be a non-empty list")
        return ()
    if not all(_is_nonempty_str(x) for x in raw):
        errs.append(f"{label}: bookingIds entries must be non-empty strings")
        return ()
    return tuple(raw)


def validate_change_dict(obj: Any, label: str = "change") -> List[str]:
    """Return contract errors for one change object (empty list = valid)."""
    errs: List[str] = []
    if not isinstance(obj, dict):
        return [f"{label}: must be an object"]
    kind = obj.get("type")
    if kind not in CHANGE_TYPES:
        return [f"{label}: unknown type {kind!r}"]

    if kind == ASSIGN:
        if not _is_nonempty_str(obj.get("bookingId")):
            errs.append(f"{label}: assign must include non-empty bookingId")
        if not _is_nonempty_str(obj.get("toGuideId")):
            errs.append(f"{label}: assign must include non-empty toGuideId")
    elif kind == UNASSIGN:
        _ids(obj, errs, label)
        if not _is_nonempty_str(obj.get("fromGuideId")):
            errs.append(f"{label}: unassign must include non-empty fromGuideId")
    elif kind == REASSIGN:
        _ids(obj, errs, label)
        if not _is_nonempty_str(obj.get("fromGuideId")):
            errs.append(f"{label}: reassign must include non-empty fromGuideId")
        if not _is_nonempty_str(obj.get("toGuideId")):
            errs.append(f"{label}: reassign must include non-empty toGuideId")
    else:
        _ids(obj, errs, label)
        if not _is_nonempty_str(obj.get("guideId")):
            errs.append(f"{label}: time-shift must include non-empty guideId")
        t = obj.get("newStartTime")
        try:
            parse_hhmm(t)
        except ValueError:
            errs.append(f"{label}: time-shift newStartTime must be HH:MM, got {t!r}")
    return errs


def change_from_dict(obj: Any) -> Change:
    errs = validate_change_dict(obj)
    if errs:
        raise ChangeContractError("Invalid change:\n" + "\n".join(f"  - {e}" for e in errs))

    kind = obj["type"]
    if kind == ASSIGN:
        return AssignChange(booking_id=obj["bookingId"], to_guide_id=obj["toGuideId"])
    if kind == UNASSIGN:
        return UnassignChange(booking_ids=tuple(obj["bookingIds"]), from_guide_id=obj["fromGuideId"])
    if kind == REASSIGN:
        return ReassignChange(
            booking_ids=tuple(obj["bookingIds"]),
            from_guide_id=obj["fromGuideId"],
            to_guide_id=obj["toGuideId"],
        )
    return TimeShiftChange(
        booking_ids=tuple(obj["bookingIds"]),
        guide_id=obj["guideId"],
        new_start_time=obj["newStartTime"].strip(),
    )


def changes_to_dicts(changes: Sequence[Change]) -> List[JsonDict]:
    return [change_to_dict(c) for c in changes]


def changes_from_dicts(objs: Any) -> List[Change]:
    if not isinstance(objs, list):
        raise ChangeContractError("changes must be a list")
    errs: List[str] = []
    for i, obj in enumerate(objs):
        errs.extend(validate_change_dict(obj, label=f"changes[{i}]"))
    if errs:
        raise ChangeContractError("Invalid changes:\n" + "\n".join(f"  - {e}" for e in errs))
    return [change_from_dict(obj) for obj in objs]


def batch_result_from_dict(obj: Any) -> BatchResult:
    if not isinstance(obj, dict):
        raise ChangeContractError("batch result must be an object")
    success = obj.get("success")
    applied = obj.get("applied")
    failed = obj.get("failed", 0)
    if not isinstance(success, bool):
        raise ChangeContractError("batch result success must be a bool")
    if not isinstance(applied, int) or isinstance(applied, bool) or applied < 0:
        raise ChangeContractError("batch result applied must be a non-negative int")
    if not isinstance(failed, int) or isinstance(failed, bool) or failed < 0:
        raise ChangeContractError("batch result failed must be a non-negative int")
    errors = obj.get("errors") or []
    if not isinstance(errors, list) or not all(isinstance(x, str) for x in errors):
        raise ChangeContractError("batch result errors must be a list of strings")
    return BatchResult(success=success, applied=applied, failed=failed, errors=tuple(errors))


def batch_result_to_dict(result: BatchResult) -> JsonDict:
    return {
        "success": bool(result.success),
        "applied": int(result.applied),
        "failed": int(result.failed),
        "errors": list(result.errors),
    }
