"""Utility modules for logging, auditing and retries."""
from .retry import with_retry, ensure_ready_with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    timed_section_sync,
    perf_logger,
)
from .audit_log import (
    setup_audit_logging,
    log_change,
    get_recent_changes,
    ChangeRecord,
)

__all__ = [
    "with_retry",
    "ensure_ready_with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "timed_section_sync",
    "perf_logger",
    "setup_audit_logging",
    "log_change",
    "get_recent_changes",
    "ChangeRecord",
]
