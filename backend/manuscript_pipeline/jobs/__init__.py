"""Job state machine and read-side reporting."""

from manuscript_pipeline.jobs.reporting import (
    ManuscriptResults,
    StatusReport,
    build_status_report,
    collect_results,
)
from manuscript_pipeline.jobs.tracker import JobTracker, terminal_status

__all__ = [
    "JobTracker",
    "ManuscriptResults",
    "StatusReport",
    "build_status_report",
    "collect_results",
    "terminal_status",
]
