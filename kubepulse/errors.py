"""Exception hierarchy for KubePulse.

Overflow of a subscriber queue is deliberately absent: it is counted per
subscription and never raised.
"""

from __future__ import annotations


class KubePulseError(Exception):
    """Base class for all KubePulse errors."""


class ConnectivityError(KubePulseError):
    """The control plane could not be reached while listing pods."""


class SyncTimeoutError(KubePulseError):
    """The initial list did not report synced within the allowed time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"cache did not sync within {timeout:g}s")
        self.timeout = timeout


class StreamError(KubePulseError):
    """The watch stream failed after it was established."""


class InvariantViolation(KubePulseError):
    """The control plane delivered an object that is not a pod."""

    def __init__(self, object_kind: str, detail: str = "") -> None:
        message = f"watch delivered unexpected object kind {object_kind!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.object_kind = object_kind


class SessionEndedError(KubePulseError):
    """Operation attempted on a watch session that has already stopped."""


class NotFoundError(KubePulseError):
    """The referenced pod does not exist."""
