"""Exceptions raised by mandelpool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from mandelpool.models import Submission, WorkUnit


class MandelbrotError(Exception):
    """Base class for every error a generation run can report."""


class InvalidConfiguration(MandelbrotError, ValueError):
    """Non-positive sizes, iteration bound, tile size or thread count."""


class WorkerFailure(MandelbrotError):
    """A unit raised while being computed. The original error is chained."""

    def __init__(self, unit: "WorkUnit", cause: BaseException):
        self.unit = unit
        self.cause = cause
        super().__init__(f"Failed computing {unit}: {cause!r}")


class CancellationTimeout(MandelbrotError):
    """Shutdown grace period elapsed and remaining work was cancelled."""

    def __init__(self, cancelled: Sequence["Submission"], timeout: float | None):
        self.cancelled = list(cancelled)
        self.timeout = timeout
        super().__init__(
            f"{len(self.cancelled)} unit(s) cancelled after {timeout}s shutdown grace period; "
            "image is incomplete"
        )


class AssemblyError(MandelbrotError):
    """A result could not be written into the image buffer exactly once."""
