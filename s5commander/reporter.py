#!/usr/bin/env python3
"""
Summary Reporter for S5 Commander
Accumulates run summaries and reports them periodically and at shutdown
"""

import logging
import time
from typing import Callable, Optional

from s5commander.metrics import (
    MetricsSink,
    NullMetricsSink,
    build_run_metrics,
    build_session_metrics,
    build_window_metrics,
)
from s5commander.summary import RunSummary
from s5commander.utils import format_duration

logger = logging.getLogger(__name__)

# Failed paths listed individually in a report before truncating
MAX_LISTED_FAILURES = 20
NANOSECONDS = 1_000_000_000


def runs_per_report(process_interval: float, reporting_window: float) -> int:
    """
    Number of ticks per reporting window: max(1, floor(window / interval)).

    Both durations are compared in whole nanoseconds.

    Examples:
        >>> runs_per_report(1, 60)    # 60
        >>> runs_per_report(90, 60)   # 1
    """
    interval_ns = round(process_interval * NANOSECONDS)
    window_ns = round(reporting_window * NANOSECONDS)
    if interval_ns <= 0:
        raise ValueError("process_interval must be positive")
    return max(1, window_ns // interval_ns)


class SummaryReporter:
    """
    Owns accumulated totals for the current window and the whole session.

    Only the scheduler loop calls into the reporter, so no locking is used.

    Example:
        >>> reporter = SummaryReporter(process_interval=1, reporting_window=60)
        >>> reporter.record_run(summary)   # reports every 60th call
        >>> reporter.report_final()        # once, at shutdown

    Attributes:
        window (RunSummary): Totals since the last periodic report
        session (RunSummary): Totals since startup
        tick_count (int): Runs recorded since the last periodic report
        total_runs (int): Runs recorded since startup
        runs_per_report (int): Ticks between periodic reports
    """

    def __init__(self,
                 process_interval: float,
                 reporting_window: float = 60.0,
                 metrics_sink: Optional[MetricsSink] = None,
                 clock: Callable[[], float] = time.time):
        self.process_interval = process_interval
        self.reporting_window = reporting_window
        self.runs_per_report = runs_per_report(process_interval, reporting_window)
        self.metrics_sink = metrics_sink or NullMetricsSink()
        self._clock = clock

        self.window = RunSummary()
        self.session = RunSummary()
        self.tick_count = 0
        self.total_runs = 0
        self.reports_sent = 0

    def record_run(self, summary: RunSummary) -> bool:
        """
        Fold one run's summary in and report if the window is complete.

        Args:
            summary: Result of one run (an empty summary for a failed run)

        Returns:
            bool: True if a periodic report was made
        """
        self.window.accumulate(summary)
        self.session.accumulate(summary)
        self.tick_count += 1
        self.total_runs += 1

        self._emit(build_run_metrics(summary, now=self._clock()))

        if self.tick_count >= self.runs_per_report:
            self.report_periodic()
            return True
        return False

    def report_periodic(self):
        """Report the current window, then reset window totals and tick counter."""
        window = self.window

        if window.files_transferred > 0:
            logger.info(
                f"Summary over last {self.tick_count} runs "
                f"(~{format_duration(self.reporting_window)}): "
                f"{window.files_transferred} files transferred, "
                f"{window.files_deleted} files deleted, "
                f"{window.megabytes:.2f} MB, "
                f"{window.files_failed} files failed to delete."
            )
        else:
            logger.debug(f"No files transferred over last {self.tick_count} runs")

        self._log_failed_deletions(window)
        self._emit(build_window_metrics(window, self.tick_count))
        self.reports_sent += 1

        self.window = RunSummary()
        self.tick_count = 0

    def report_final(self):
        """
        Report at shutdown: the partial window and the session totals.

        Always runs, even when nothing was transferred. Nothing is reset.
        """
        window = self.window
        session = self.session

        logger.info(
            f"Final summary: {window.files_transferred} files transferred, "
            f"{window.files_deleted} files deleted, "
            f"{window.megabytes:.2f} MB, "
            f"{window.files_failed} files failed to delete "
            f"over {self.tick_count} runs."
        )
        logger.info(
            f"Session totals: {session.files_transferred} files transferred, "
            f"{session.files_deleted} files deleted, "
            f"{session.megabytes:.2f} MB, "
            f"{session.files_failed} files failed to delete "
            f"over {self.total_runs} runs."
        )

        self._log_failed_deletions(window)
        self._emit(build_session_metrics(session, self.total_runs))

    def _log_failed_deletions(self, summary: RunSummary):
        if not summary.failed_deletions:
            return

        # Uploaded files we could not delete need manual cleanup
        listed = summary.failed_deletions[:MAX_LISTED_FAILURES]
        more = summary.files_failed - len(listed)
        suffix = f" (and {more} more)" if more > 0 else ""
        logger.warning(
            f"{summary.files_failed} uploaded files could not be deleted locally: "
            f"{', '.join(listed)}{suffix}"
        )

    def _emit(self, metrics):
        try:
            self.metrics_sink.emit(metrics)
        except Exception as e:
            logger.error(f"Failed to emit metrics: {e}")
