"""Audit logging for configuration changes.

Provides change tracking with:
- Timestamped entries for every save and manual sync
- Base and resulting fingerprints (for tracing who overwrote what)
- Structured JSON log format
- Separate audit log file
"""
import json
import logging
import os
from collections import deque
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

# Create dedicated audit logger
audit_logger = logging.getLogger("configkeeper.audit")

DEFAULT_AUDIT_DIR = "~/.configkeeper"


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.configkeeper/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    # One JSON object per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Don't propagate to root logger
    audit_logger.propagate = False
    return audit_file


@dataclass
class ChangeRecord:
    """Record of a configuration change or sync."""
    timestamp: str
    doc_type: str
    operation: str  # save, sync
    user: str
    success: bool
    base_fingerprint: str = ""
    new_fingerprint: str = ""
    error: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


def log_change(
    doc_type: str,
    operation: str,
    success: bool,
    user: Optional[str] = None,
    base_fingerprint: str = "",
    new_fingerprint: str = "",
    error: Optional[str] = None,
    details: Optional[dict] = None,
) -> ChangeRecord:
    """Write one change record to the audit log.

    Returns:
        The ChangeRecord that was logged
    """
    record = ChangeRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        doc_type=doc_type,
        operation=operation,
        user=user or "anonymous",
        success=success,
        base_fingerprint=base_fingerprint,
        new_fingerprint=new_fingerprint,
        error=error,
        details=details or {},
    )

    audit_logger.info(record.to_json())
    return record


def _iter_records(log_file: Path) -> Iterator[ChangeRecord]:
    """Yield records oldest first, skipping lines that are not ChangeRecords."""
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                yield ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue


def get_recent_changes(
    log_file: Optional[str] = None,
    doc_type: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read the newest matching records from the audit log.

    Only the current file is read, not its rotated backups.

    Args:
        log_file: Path to audit log. Defaults to ~/.configkeeper/audit.log
        doc_type: Only records for this document type
        operation: Only records of this operation
        limit: Maximum number of records to return

    Returns:
        Matching ChangeRecords, most recent first
    """
    path = Path(log_file) if log_file else Path(DEFAULT_AUDIT_DIR).expanduser() / "audit.log"
    if not path.exists():
        return []

    newest: deque[ChangeRecord] = deque(maxlen=max(limit, 0))
    for record in _iter_records(path):
        if doc_type and record.doc_type != doc_type:
            continue
        if operation and record.operation != operation:
            continue
        newest.append(record)

    return list(reversed(newest))
