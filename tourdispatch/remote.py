"""Remote dispatch service boundary.

The core only depends on the small protocols below. Two implementations ship:

  - HttpDispatchClient: JSON over HTTP (stdlib urllib).
  - InMemoryDispatchBackend: applies batches all-or-nothing to a local
    snapshot; used by the replay tool and the test-suite.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
from urllib import error, parse, request

from .changes import (
    AssignChange,
    BatchResult,
    Change,
    ReassignChange,
    TimeShiftChange,
    UnassignChange,
    batch_result_from_dict,
    changes_to_dicts,
)
from .config import DispatchConfig
from .errors import ChangeContractError, ConfigError, RemoteError, RemoteMutationError
from .model import OUTSOURCED_PREFIX, Booking, DispatchSnapshot, Guide
from .projection import build_snapshot, snapshot_to_dispatch

JsonDict = Dict[str, Any]

logger = logging.getLogger(__name__)


class DispatchSource(Protocol):
    def get_dispatch(self, date: str) -> JsonDict:
        """Return the getDispatch read projection for date."""


class BatchApplier(Protocol):
    def batch_apply_changes(self, date: str, changes: Sequence[Change]) -> BatchResult:
        """Apply changes; report how many were applied and how many failed."""


class OutsourcedStaffing(Protocol):
    def add_outsourced_guide_to_run(self, date: str, tour_run_key: str, name: str, contact: Optional[str]) -> JsonDict:
        """Staff a run with an external guide outside the undo history."""


class HttpDispatchClient:
    """JSON client for the dispatch service.

    Endpoints (relative to base_url):
      GET  /dispatch?date=YYYY-MM-DD
      POST /dispatch/batch               {"date", "changes"}
      POST /dispatch/outsourced-guides   {"date", "tourRunKey", "name", "contact"}
    """

    def __init__(self, base_url: str, *, api_token: Optional[str] = None, timeout_s: float = 30.0) -> None:
        if not isinstance(base_url, str) or not base_url.strip():
            raise ConfigError("base_url must be a non-empty string")
        self.base_url = base_url.strip().rstrip("/")
        self.api_token = api_token
        self.timeout_s = float(timeout_s)

    @classmethod
    def from_config(cls, cfg: DispatchConfig) -> "HttpDispatchClient":
        if not cfg.base_url:
            raise ConfigError("TOURDISPATCH_BASE_URL (or --base-url) is required for the HTTP client")
        return cls(cfg.base_url, api_token=cfg.api_token, timeout_s=cfg.timeout_s)

    def _request(self, method: str, path: str, body: Optional[JsonDict] = None, query: Optional[Dict[str, str]] = None) -> JsonDict:
        url = self.base_url + path
        if query:
            url += "?" + parse.urlencode(query)
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        if self.api_token:
            req.add_header("Authorization", f"Bearer {self.api_token}")

        t0 = time.monotonic()
        try:
            with request.urlopen(req, timeout=self.timeout_s) as resp:
                text = resp.read().decode("utf-8", errors="replace")
        except error.HTTPError as e:
            elapsed_ms = int((time.monotonic() - t0) * 1000)
            body_txt = ""
            try:
                body_txt = e.read().decode("utf-8", errors="replace").strip()
            except Exception:
                body_txt = ""
            suffix = f" body={body_txt[:400]!r}" if body_txt else ""
            raise RemoteError(f"{method} {path}: HTTP {e.code} after {elapsed_ms}ms.{suffix}") from e
        except error.URLError as e:
            elapsed_ms = int((time.monotonic() - t0) * 1000)
            raise RemoteError(f"{method} {path}: connection error after {elapsed_ms}ms: {e}") from e

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        logger.debug("%s %s -> %d bytes in %dms", method, path, len(text), elapsed_ms)
        if not text.strip():
            raise RemoteError(f"{method} {path}: empty response after {elapsed_ms}ms")
        try:
            obj = json.loads(text)
        except ValueError as e:
            raise RemoteError(f"{method} {path}: response is not JSON") from e
        if not isinstance(obj, dict):
            raise RemoteError(f"{method} {path}: response must be a JSON object")
        return obj

    def get_dispatch(self, date: str) -> JsonDict:
        return self._request("GET", "/dispatch", query={"date": date})

    def batch_apply_changes(self, date: str, changes: Sequence[Change]) -> BatchResult:
        body = {"date": date, "changes": changes_to_dicts(changes)}
        try:
            obj = self._request("POST", "/dispatch/batch", body=body)
        except RemoteError as e:
            raise RemoteMutationError(str(e)) from e
        try:
            return batch_result_from_dict(obj)
        except ChangeContractError as e:
            raise RemoteMutationError(f"malformed batch result: {e}") from e

    def add_outsourced_guide_to_run(self, date: str, tour_run_key: str, name: str, contact: Optional[str]) -> JsonDict:
        body = {"date": date, "tourRunKey": tour_run_key, "name": name, "contact": contact}
        return self._request("POST", "/dispatch/outsourced-guides", body=body)


class InMemoryDispatchBackend:
    """A dispatch service held in memory.

    Batches are all-or-nothing: the first change that cannot be applied
    rejects the whole batch and leaves state untouched.
    """

    def __init__(self, snapshot: DispatchSnapshot) -> None:
        self._snapshot = snapshot
        self.calls: List[Tuple[str, Tuple[Change, ...]]] = []
        self._fail_next = 0
        self._fail_reason = "injected failure"

    @classmethod
    def from_dispatch(cls, response: JsonDict, *, date: Optional[str] = None) -> "InMemoryDispatchBackend":
        return cls(build_snapshot(response, date=date))

    @property
    def snapshot(self) -> DispatchSnapshot:
        return self._snapshot

    def fail_next(self, count: int = 1, reason: str = "injected failure") -> None:
        """Reject the next `count` batches (simulates a service-side failure)."""
        self._fail_next = int(count)
        self._fail_reason = reason

    def _check_date(self, date: str) -> None:
        if self._snapshot.date and date != self._snapshot.date:
            raise RemoteError(f"no dispatch loaded for {date} (have {self._snapshot.date})")

    def get_dispatch(self, date: str) -> JsonDict:
        self._check_date(date)
        return snapshot_to_dispatch(self._snapshot)

    def batch_apply_changes(self, date: str, changes: Sequence[Change]) -> BatchResult:
        self._check_date(date)
        batch = tuple(changes)
        self.calls.append((date, batch))

        if self._fail_next > 0:
            self._fail_next -= 1
            logger.warning("rejecting batch of %d change(s): %s", len(batch), self._fail_reason)
            return BatchResult(success=False, applied=0, failed=len(batch), errors=(self._fail_reason,))

        bookings: Dict[str, Booking] = {b.id: b for b in self._snapshot.bookings}
        guide_ids = {g.id for g in self._snapshot.guides}
        errors: List[str] = []
        for i, change in enumerate(batch):
            try:
                _apply_change(bookings, guide_ids, change)
            except ValueError as e:
                errors.append(f"changes[{i}]: {e}")
                break

        if errors:
            return BatchResult(success=False, applied=0, failed=len(batch), errors=tuple(errors))

        ordered = tuple(bookings[b.id] for b in self._snapshot.bookings)
        self._snapshot = dataclasses.replace(self._snapshot, bookings=ordered)
        return BatchResult(success=True, applied=len(batch), failed=0)

    def add_outsourced_guide_to_run(self, date: str, tour_run_key: str, name: str, contact: Optional[str]) -> JsonDict:
        self._check_date(date)
        if not isinstance(name, str) or not name.strip():
            raise RemoteError("outsourced guide name is required")
        gid = f"{OUTSOURCED_PREFIX}{name.strip()}"
        members = [b for b in self._snapshot.bookings if b.tour_run_key == tour_run_key and b.guide_id is None]
        if not members:
            raise RemoteError(f"no unassigned bookings for tour run {tour_run_key}")

        guides = list(self._snapshot.guides)
        if gid not in {g.id for g in guides}:
            guides.append(Guide(id=gid, name=name.strip(), vehicle_capacity=None, is_outsourced=True, contact=contact))
        moved = {b.id for b in members}
        bookings = tuple(
            dataclasses.replace(b, guide_id=gid) if b.id in moved else b for b in self._snapshot.bookings
        )
        self._snapshot = dataclasses.replace(self._snapshot, bookings=bookings, guides=tuple(guides))
        return {"guideId": gid, "bookingIds": [b.id for b in members]}


def _booking(bookings: Dict[str, Booking], booking_id: str) -> Booking:
    b = bookings.get(booking_id)
    if b is None:
        raise ValueError(f"unknown booking {booking_id}")
    return b


def _require_guide(guide_ids: set, guide_id: str) -> None:
    if guide_id not in guide_ids:
        raise ValueError(f"unknown guide {guide_id}")


def _apply_change(bookings: Dict[str, Booking], guide_ids: set, change: Change) -> None:
    if isinstance(change, AssignChange):
        _require_guide(guide_ids, change.to_guide_id)
        b = _booking(bookings, change.booking_id)
        if b.guide_id is not None and b.guide_id != change.to_guide_id:
            raise ValueError(f"booking {b.id} is already assigned to {b.guide_id}")
        bookings[b.id] = dataclasses.replace(b, guide_id=change.to_guide_id)
    elif isinstance(change, UnassignChange):
        for bid in change.booking_ids:
            b = _booking(bookings, bid)
            if b.guide_id != change.from_guide_id:
                raise ValueError(f"booking {bid} is not assigned to {change.from_guide_id}")
            bookings[bid] = dataclasses.replace(b, guide_id=None)
    elif isinstance(change, ReassignChange):
        _require_guide(guide_ids, change.to_guide_id)
        for bid in change.booking_ids:
            b = _booking(bookings, bid)
            if b.guide_id != change.from_guide_id:
                raise ValueError(f"booking {bid} is not assigned to {change.from_guide_id}")
            bookings[bid] = dataclasses.replace(b, guide_id=change.to_guide_id)
    elif isinstance(change, TimeShiftChange):
        for bid in change.booking_ids:
            b = _booking(bookings, bid)
            if b.guide_id != change.guide_id:
                raise ValueError(f"booking {bid} is not assigned to {change.guide_id}")
            bookings[bid] = dataclasses.replace(b, start_time=change.new_start_time)
    else:
        raise TypeError(f"not a Change: {type(change).__name__}")
