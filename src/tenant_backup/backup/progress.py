"""Progress reporting for backup and restore runs.

A progress callback receives ``(percent, step)`` where ``percent`` is an
integer in 0-100 and ``step`` a human-readable label.  Runs report the
start of every step, then ``(100, "Complete")`` once they are done.

Usage:
    from tenant_backup.backup.progress import StepProgress, scale_progress

    progress = StepProgress(print, total=3)
    progress.step("Exporting client")    # (0, "Exporting client")
    progress.step("Exporting invoice")   # (33, "Exporting invoice")
    progress.complete()                  # (100, "Complete")

    # Compose with another phase: map 0-100 into 10-100
    restore_progress = scale_progress(print, 10, 100)
"""

from collections.abc import Callable
import logging

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def percent_of(current: int, total: int) -> int:
    """``current / total`` as a whole percentage, rounded half up."""
    if total <= 0:
        return 0
    return min(100, int(current * 100 / total + 0.5))


class StepProgress:
    """Counts steps of a run and forwards percentages to a callback.

    ``step()`` reports the percentage reached *before* the labelled step
    runs, so the first step of a run reports 0.
    """

    def __init__(self, callback: ProgressCallback | None, total: int) -> None:
        self._callback = callback
        self.total = total
        self.current = 0

    def step(self, label: str) -> None:
        self.report(percent_of(self.current, self.total), label)
        self.current += 1

    def complete(self, label: str = "Complete") -> None:
        self.current = self.total
        self.report(100, label)

    def report(self, percent: int, label: str) -> None:
        report_progress(self._callback, percent, label)


def report_progress(callback: ProgressCallback | None, percent: int, label: str) -> None:
    """Send one report to ``callback``, logging instead of raising on failure."""
    if callback is None:
        return
    # Sink errors never fail the run
    try:
        callback(percent, label)
    except Exception:
        logger.warning(f"Progress callback failed at {percent}% ({label})", exc_info=True)


def scale_progress(
    callback: ProgressCallback | None, start: int, end: int
) -> ProgressCallback | None:
    """Wrap ``callback`` so 0-100 maps linearly onto ``start``-``end``."""
    if callback is None:
        return None

    def scaled(percent: int, step: str) -> None:
        callback(start + int((end - start) * percent / 100 + 0.5), step)

    return scaled
