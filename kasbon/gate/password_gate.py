"""
Password Gate

Every create, edit and delete waits here until the shared password is
typed in.

IMPORTANT: This is friction, not security. The password is shared by
everyone using the page, has a well-known default, and is checked in the
same process that holds it. It stops accidental edits; it does not stop
anyone who wants to change the data.

The gate holds at most one pending action. A wrong password keeps it so
the user can try again; cancel drops it. While a confirmed action is still
running, new actions are refused, which is what keeps one session from
overlapping its own writes. Each page session owns its own gate, and a
session's reruns may land on different threads, so the busy check and
the state change happen under one lock.
"""

import hmac
import threading
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from kasbon.models.debt import PendingAction


T = TypeVar("T")


class GateError(Exception):
    """Base exception for the password gate."""
    pass


class WrongSecretError(GateError):
    """The entered password doesn't match. The pending action is kept."""
    pass


class NoPendingActionError(GateError):
    """Confirm was called with nothing waiting."""
    pass


class ActionInProgressError(GateError):
    """A confirmed action is still running."""
    pass


class ActionGate(Generic[T]):
    """
    Holds one pending action until the password is confirmed.

    Usage:
        gate = ActionGate(secret, executor=run_action)
        gate.request(PendingAction(kind=PendingActionKind.DELETE, entry_id=key))
        outcome = await gate.confirm(entered_password)
    """

    def __init__(
        self,
        secret: str,
        executor: Callable[[PendingAction], Awaitable[T]],
    ):
        if not secret:
            raise ValueError("Gate secret cannot be empty")
        self._secret = secret
        self._executor = executor
        self._pending: Optional[PendingAction] = None
        self._busy = False
        self._lock = threading.Lock()

    @property
    def pending(self) -> Optional[PendingAction]:
        return self._pending

    @property
    def is_busy(self) -> bool:
        """True while a confirmed action is running."""
        return self._busy

    def request(self, action: PendingAction) -> PendingAction:
        """
        Stage an action. Replaces any action not yet confirmed.

        Raises:
            ActionInProgressError: If a confirmed action is still running
        """
        with self._lock:
            if self._busy:
                raise ActionInProgressError("Another change is still being saved")
            self._pending = action
        return action

    def check(self, entered_secret: str) -> bool:
        return hmac.compare_digest(
            (entered_secret or "").encode("utf-8"),
            self._secret.encode("utf-8"),
        )

    async def confirm(self, entered_secret: str) -> T:
        """
        Run the pending action if the password matches.

        The pending action is cleared once the executor has been called,
        whether it succeeded or raised. Executor errors propagate as they
        are; nothing is retried.

        Raises:
            NoPendingActionError: Nothing is waiting
            ActionInProgressError: A confirmed action is still running
            WrongSecretError: Password mismatch; the action stays pending
        """
        with self._lock:
            if self._busy:
                raise ActionInProgressError("Another change is still being saved")
            if self._pending is None:
                raise NoPendingActionError("No action is waiting for confirmation")
            if not self.check(entered_secret):
                raise WrongSecretError("Password salah")
            action = self._pending
            self._busy = True

        try:
            return await self._executor(action)
        finally:
            with self._lock:
                self._pending = None
                self._busy = False

    def cancel(self) -> Optional[PendingAction]:
        """Drop the pending action without running it. Returns what was dropped."""
        with self._lock:
            if self._busy:
                raise ActionInProgressError("Another change is still being saved")
            action, self._pending = self._pending, None
        return action
