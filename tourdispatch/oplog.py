"""Operation log: mutation intents -> change-sets, plus undo/redo stacks.

The inverse change-set is built from the intent alone (it carries the
pre-mutation guide and time), before the forward set is sent.

Stacks only move after the remote boundary confirms the whole change-set was
applied; a failed commit/undo/redo leaves both stacks exactly as they were.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from .changes import AssignChange, BatchResult, Change, ReassignChange, TimeShiftChange, UnassignChange
from .config import DEFAULT_MAX_HISTORY
from .drag import AssignIntent, GroupAssignIntent, MutationIntent, ReassignIntent, TimeShiftIntent, UnassignIntent
from .errors import EmptyHistoryError, MutationInFlightError, RemoteMutationError
from .remote import BatchApplier
from .util.timeparse import format_time_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    forward: Tuple[Change, ...]
    inverse: Tuple[Change, ...]
    description: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def _name(guide_id: Optional[str], names: Mapping[str, str]) -> str:
    if guide_id is None:
        return "unassigned"
    return names.get(guide_id, guide_id)


def _what(booking_ids: Sequence[str]) -> str:
    if len(booking_ids) == 1:
        return f"booking {booking_ids[0]}"
    return f"{len(booking_ids)} bookings"


def build_operation(intent: MutationIntent, guide_names: Optional[Mapping[str, str]] = None) -> Operation:
    """Translate a drop intent into forward and inverse change-sets."""
    names: Mapping[str, str] = guide_names or {}

    if isinstance(intent, (AssignIntent, GroupAssignIntent)):
        ids = tuple(intent.booking_ids)
        forward: List[Change] = [AssignChange(booking_id=bid, to_guide_id=intent.to_guide_id) for bid in ids]
        inverse: List[Change] = []
        desc = f"Assign {_what(ids)} to {_name(intent.to_guide_id, names)}"
        if intent.new_start_time is not None:
            if intent.previous_start_time is None:
                raise ValueError("assign with a time change needs previous_start_time")
            forward.append(TimeShiftChange(booking_ids=ids, guide_id=intent.to_guide_id, new_start_time=intent.new_start_time))
            # Restore the time while the bookings are still on the guide.
            inverse.append(
                TimeShiftChange(booking_ids=ids, guide_id=intent.to_guide_id, new_start_time=intent.previous_start_time)
            )
            desc += f" at {format_time_label(intent.new_start_time)}"
        inverse.append(UnassignChange(booking_ids=ids, from_guide_id=intent.to_guide_id))
        return Operation(forward=tuple(forward), inverse=tuple(inverse), description=desc)

    if isinstance(intent, TimeShiftIntent):
        ids = tuple(intent.booking_ids)
        return Operation(
            forward=(TimeShiftChange(booking_ids=ids, guide_id=intent.guide_id, new_start_time=intent.new_start_time),),
            inverse=(
                TimeShiftChange(booking_ids=ids, guide_id=intent.guide_id, new_start_time=intent.previous_start_time),
            ),
            description=(
                f"Move {_what(ids)} from {format_time_label(intent.previous_start_time)}"
                f" to {format_time_label(intent.new_start_time)}"
            ),
        )

    if isinstance(intent, ReassignIntent):
        ids = tuple(intent.booking_ids)
        forward = [
            ReassignChange(booking_ids=ids, from_guide_id=intent.from_guide_id, to_guide_id=intent.to_guide_id)
        ]
        inverse = []
        desc = f"Move {_what(ids)} from {_name(intent.from_guide_id, names)} to {_name(intent.to_guide_id, names)}"
        if intent.new_start_time is not None:
            if intent.previous_start_time is None:
                raise ValueError("reassign with a time change needs previous_start_time")
            forward.append(
                TimeShiftChange(booking_ids=ids, guide_id=intent.to_guide_id, new_start_time=intent.new_start_time)
            )
            # Undo the time first while the bookings still sit on the target guide.
            inverse.append(
                TimeShiftChange(booking_ids=ids, guide_id=intent.to_guide_id, new_start_time=intent.previous_start_time)
            )
            desc += f" at {format_time_label(intent.new_start_time)}"
        inverse.append(ReassignChange(booking_ids=ids, from_guide_id=intent.to_guide_id, to_guide_id=intent.from_guide_id))
        return Operation(forward=tuple(forward), inverse=tuple(inverse), description=desc)

    if isinstance(intent, UnassignIntent):
        ids = tuple(intent.booking_ids)
        return Operation(
            forward=(UnassignChange(booking_ids=ids, from_guide_id=intent.from_guide_id),),
            inverse=tuple(AssignChange(booking_id=bid, to_guide_id=intent.from_guide_id) for bid in ids),
            description=f"Unassign {_what(ids)} from {_name(intent.from_guide_id, names)}",
        )

    raise TypeError(f"not a mutation intent: {type(intent).__name__}")


class OperationLog:
    """Undo/redo history bound to one dispatch date and one batch applier.

    refresh, when given, is called after every remote call (success or not)
    so the caller's read projection can reconcile with the service.
    """

    def __init__(
        self,
        applier: BatchApplier,
        date: str,
        *,
        max_history: int = DEFAULT_MAX_HISTORY,
        refresh: Optional[Callable[[], None]] = None,
    ) -> None:
        if int(max_history) < 1:
            raise ValueError(f"max_history must be >= 1, got {max_history}")
        self._applier = applier
        self._date = date
        self._max_history = int(max_history)
        self._refresh = refresh
        self._undo: List[Operation] = []
        self._redo: List[Operation] = []
        self._lock = threading.Lock()

    @property
    def date(self) -> str:
        return self._date

    @property
    def is_mutating(self) -> bool:
        return self._lock.locked()

    @property
    def can_undo(self) -> bool:
        return bool(self._undo) and not self.is_mutating

    @property
    def can_redo(self) -> bool:
        return bool(self._redo) and not self.is_mutating

    @property
    def undo_count(self) -> int:
        return len(self._undo)

    @property
    def redo_count(self) -> int:
        return len(self._redo)

    @property
    def last_description(self) -> Optional[str]:
        return self._undo[-1].description if self._undo else None

    def history(self) -> List[str]:
        """Undo stack descriptions, oldest first."""
        return [op.description for op in self._undo]

    def clear(self) -> None:
        if self.is_mutating:
            raise MutationInFlightError("cannot clear history while a mutation is in flight")
        self._undo.clear()
        self._redo.clear()

    def _push_undo(self, op: Operation) -> None:
        self._undo.append(op)
        overflow = len(self._undo) - self._max_history
        if overflow > 0:
            del self._undo[:overflow]

    def _send(self, changes: Tuple[Change, ...], what: str) -> BatchResult:
        """Send one change-set. Caller holds the lock."""
        try:
            try:
                result = self._applier.batch_apply_changes(self._date, changes)
            except RemoteMutationError:
                raise
            except Exception as e:
                logger.warning("%s failed: %s", what, e)
                raise RemoteMutationError(f"{what} failed: {e}") from e

            if not result.is_complete(len(changes)):
                detail = "; ".join(result.errors) if result.errors else "no detail"
                logger.warning(
                    "%s rejected: applied=%d failed=%d requested=%d (%s)",
                    what,
                    result.applied,
                    result.failed,
                    len(changes),
                    detail,
                )
                raise RemoteMutationError(
                    f"{what} rejected: applied {result.applied} of {len(changes)} change(s): {detail}",
                    result=result,
                )
            return result
        finally:
            self._run_refresh(what)

    def _run_refresh(self, what: str) -> None:
        if self._refresh is None:
            return
        try:
            self._refresh()
        except Exception as e:
            # A refresh failure must not mask the outcome of the mutation itself.
            logger.warning("refresh after %s failed: %s", what, e)

    def _acquire(self, what: str) -> None:
        if not self._lock.acquire(blocking=False):
            raise MutationInFlightError(f"cannot {what}: another change-set is in flight")

    def commit(self, op: Operation) -> Operation:
        if not op.forward:
            raise ValueError("operation has no forward changes")
        self._acquire("commit")
        try:
            self._send(op.forward, f"commit '{op.description}'")
            self._push_undo(op)
            self._redo.clear()
        finally:
            self._lock.release()
        logger.info("committed: %s", op.description)
        return op

    def undo(self) -> Operation:
        self._acquire("undo")
        try:
            if not self._undo:
                raise EmptyHistoryError("nothing to undo")
            op = self._undo[-1]
            self._send(op.inverse, f"undo '{op.description}'")
            self._undo.pop()
            self._redo.append(op)
        finally:
            self._lock.release()
        logger.info("undone: %s", op.description)
        return op

    def redo(self) -> Operation:
        self._acquire("redo")
        try:
            if not self._redo:
                raise EmptyHistoryError("nothing to redo")
            op = self._redo[-1]
            self._send(op.forward, f"redo '{op.description}'")
            self._redo.pop()
            self._push_undo(op)
        finally:
            self._lock.release()
        logger.info("redone: %s", op.description)
        return op
