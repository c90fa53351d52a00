# ================================
# AUDIT LOGGER TESTS (tests/test_audit.py)
# ================================

import uuid

from backoffice.models.audit import AuditLog
from backoffice.utils.audit import AuditLogger, audit_logger

class BrokenSession:
    """Session stand-in whose writes always fail"""

    def __init__(self):
        self.rolled_back = False

    def add(self, instance):
        raise RuntimeError("database is gone")

    def commit(self):
        raise RuntimeError("database is gone")

    def rollback(self):
        self.rolled_back = True

class TestSanitizing:

    def test_sensitive_keys_are_redacted_at_any_depth(self):
        sanitized = AuditLogger()._sanitize_sensitive_data({
            "email": "editor@example.com",
            "password": "Secret123",
            "nested": {"csrf_token": "abc", "reason": "mismatch"},
            "items": [{"session_token": "xyz"}, "plain"],
        })

        assert sanitized == {
            "email": "editor@example.com",
            "password": "***REDACTED***",
            "nested": {"csrf_token": "***REDACTED***", "reason": "mismatch"},
            "items": [{"session_token": "***REDACTED***"}, "plain"],
        }

    def test_values_are_made_json_safe(self):
        user_id = uuid.uuid4()

        sanitized = AuditLogger()._sanitize_sensitive_data({"user": user_id, "note": "x" * 2000})

        assert sanitized["user"] == str(user_id)
        assert sanitized["note"].endswith("...[TRUNCATED]")

    def test_ip_addresses_are_normalized(self):
        logger = AuditLogger()

        assert logger._normalize_ip_address("203.0.113.7, 10.0.0.1") == "203.0.113.7"
        assert logger._normalize_ip_address("testclient") == "testclient"
        assert logger._normalize_ip_address(None) is None

class TestPersistence:

    def test_denial_survives_rollback_of_the_request(self, db):
        audit_logger.log_denial(
            db, "ACCESS_DENIED", None,
            {"resource": "products", "action": "delete", "path": "/api/v1/products"},
            ip_address="192.0.2.1", user_agent="pytest"
        )
        db.rollback()

        entry = db.query(AuditLog).one()
        assert entry.action == "ACCESS_DENIED"
        assert entry.resource_type == "products"
        assert entry.details["security_event"] is True
        assert entry.details["action"] == "delete"
        assert entry.ip_address == "192.0.2.1"
        assert entry.created_at is not None

    def test_auth_event_stays_in_the_callers_transaction(self, db):
        audit_logger.log_auth_event(db, "ROLE_CREATED", None, {"role_name": "editor"}, resource_type="role")
        db.rollback()

        assert db.query(AuditLog).count() == 0

    def test_failures_never_reach_the_caller(self):
        session = BrokenSession()

        assert audit_logger.log_auth_event(session, "LOGIN_SUCCESS", None, {"email": "a@example.com"}) is None
        audit_logger.log_denial(session, "ACCESS_DENIED", None, {"resource": "users"})

    def test_commit_failure_is_rolled_back(self, db, monkeypatch):
        def failing_commit():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db, "commit", failing_commit)

        audit_logger.log_denial(db, "CSRF_REJECTED", None, {"reason": "CSRF_TOKEN_MISSING"})
        monkeypatch.undo()

        assert db.query(AuditLog).count() == 0
