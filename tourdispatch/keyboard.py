# tourdispatch/keyboard.py
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .session import DispatchSession

CANCEL = "cancel"
UNDO = "undo"
REDO = "redo"


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False

    @property
    def has_modifier(self) -> bool:
        return bool(self.ctrl or self.meta)


def classify_key(event: KeyEvent) -> Optional[str]:
    """Map a key press to "cancel" / "undo" / "redo", or None if unbound.

    Escape cancels; Ctrl/Cmd+Z undoes; Ctrl/Cmd+Shift+Z and Ctrl/Cmd+Y redo.
    """
    key = (event.key or "").lower()
    if key in ("escape", "esc"):
        return CANCEL
    if not event.has_modifier:
        return None
    if key == "z":
        return REDO if event.shift else UNDO
    if key == "y" and not event.shift:
        return REDO
    return None


def handle_key(event: KeyEvent, session: "DispatchSession") -> Optional[str]:
    """Apply one key press to a session; returns the action performed, or None.

    Exactly one undo/redo per press. Presses are ignored while a change-set is
    in flight or when the relevant stack is empty.
    """
    action = classify_key(event)
    if action is None:
        return None
    if action == CANCEL:
        if not session.is_dragging:
            return None
        session.cancel_drag()
        return CANCEL
    if session.is_mutating:
        return None
    if action == UNDO:
        if not session.can_undo:
            return None
        session.undo()
        return UNDO
    if not session.can_redo:
        return None
    session.redo()
    return REDO
