"""Cooperative cancellation for long deployments."""

from histofy.utils.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """Flag checked between dates and batches.

    Cancelling never interrupts an in-flight commit; the current date
    finishes and the remaining dates are reported as cancelled.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        if not self._cancelled:
            logger.warning("Cancellation requested", reason=reason)
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled
