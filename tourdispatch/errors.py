# tourdispatch/errors.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .changes import BatchResult
    from .model import DropValidation


class DispatchError(Exception):
    """Base class for every error raised by tourdispatch."""


class ConfigError(DispatchError, ValueError):
    """Raised for invalid configuration values (env, CLI flags, constructors)."""


class ChangeContractError(DispatchError, ValueError):
    """Raised when a change payload does not match the batch-mutation contract."""


class InvariantError(DispatchError, RuntimeError):
    """A caller broke a precondition of the core (programming error)."""


class DragInProgressError(InvariantError):
    """start_drag was called while another drag is active."""


class NoActiveDragError(InvariantError):
    """A drag transition was requested while no drag is active."""


class EmptyHistoryError(InvariantError):
    """undo/redo was requested with an empty stack."""


class MutationInFlightError(DispatchError, RuntimeError):
    """A change-set was submitted while another one is still in flight."""


class RemoteError(DispatchError, RuntimeError):
    """The remote dispatch service could not be reached or answered garbage."""


class RemoteMutationError(RemoteError):
    """A batch of changes was rejected or only partially applied."""

    def __init__(self, message: str, result: Optional["BatchResult"] = None) -> None:
        super().__init__(message)
        self.result = result


class DropDeniedError(DispatchError):
    """A direct (non-drag) mutation failed drop validation."""

    def __init__(self, validation: "DropValidation") -> None:
        msg = validation.message or f"drop denied: {validation.reason}"
        super().__init__(msg)
        self.validation = validation


__all__ = [
    "DispatchError",
    "ConfigError",
    "ChangeContractError",
    "InvariantError",
    "DragInProgressError",
    "NoActiveDragError",
    "EmptyHistoryError",
    "MutationInFlightError",
    "RemoteError",
    "RemoteMutationError",
    "DropDeniedError",
]
