"""Password gate package."""

from kasbon.gate.password_gate import (
    ActionGate,
    ActionInProgressError,
    GateError,
    NoPendingActionError,
    WrongSecretError,
)

__all__ = [
    "ActionGate",
    "ActionInProgressError",
    "GateError",
    "NoPendingActionError",
    "WrongSecretError",
]
