"""Tests for the change audit log."""
import pytest

from mcp_config_store.utils.audit_log import (
    ChangeRecord,
    audit_logger,
    get_recent_changes,
    log_change,
    setup_audit_logging,
)


@pytest.fixture
def audit_file(tmp_path):
    path = setup_audit_logging(str(tmp_path / "audit"))
    yield path
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()


class TestChangeRecord:
    """Tests for ChangeRecord serialization."""

    def test_json_round_trip(self):
        record = ChangeRecord(
            timestamp="2026-01-13T10:00:00+00:00",
            doc_type="network",
            operation="save",
            user="alice",
            success=True,
            base_fingerprint="abc",
            new_fingerprint="def",
            details={"changed": True},
        )

        assert ChangeRecord.from_json(record.to_json()) == record


class TestAuditLog:
    """Tests for writing and reading the audit log."""

    def test_setup_creates_file_handler(self, audit_file):
        assert audit_file.name == "audit.log"
        assert audit_file.parent.is_dir()
        assert audit_logger.propagate is False
        assert len(audit_logger.handlers) == 1

    def test_setup_twice_keeps_one_handler(self, tmp_path, audit_file):
        setup_audit_logging(str(tmp_path / "audit"))

        assert len(audit_logger.handlers) == 1

    def test_log_and_read_back(self, audit_file):
        log_change("network", "save", True, user="alice", base_fingerprint="a", new_fingerprint="b")
        log_change("dns", "save", False, error="conflict")
        log_change("*", "sync", True)

        records = get_recent_changes(str(audit_file))

        assert [r.doc_type for r in records] == ["*", "dns", "network"]
        assert records[1].user == "anonymous"
        assert records[1].error == "conflict"
        assert records[2].new_fingerprint == "b"

    def test_filters_and_limit(self, audit_file):
        for i in range(5):
            log_change("network", "save", True, new_fingerprint=str(i))
        log_change("dns", "save", True)
        log_change("*", "sync", True)

        network = get_recent_changes(str(audit_file), doc_type="network", limit=2)
        syncs = get_recent_changes(str(audit_file), operation="sync")

        assert [r.new_fingerprint for r in network] == ["4", "3"]
        assert len(syncs) == 1

    def test_malformed_lines_are_skipped(self, audit_file):
        log_change("network", "save", True)
        with open(audit_file, "a", encoding="utf-8") as f:
            f.write("not json\n{\"unexpected\": 1}\n")

        assert len(get_recent_changes(str(audit_file))) == 1

    def test_missing_file(self, tmp_path):
        assert get_recent_changes(str(tmp_path / "none.log")) == []
