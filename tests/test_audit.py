"""Tests for the audit logging service."""

import logging
from uuid import uuid4

import pytest

from versenest.services.audit import AuditAction, AuditService


class TestAuditServiceSanitization:
    """Tests for credential sanitization in audit logs."""

    @pytest.fixture
    def audit_service(self):
        return AuditService()

    def test_sanitize_password_field(self, audit_service):
        """Test that password fields are redacted."""
        details = {"email": "reader@example.com", "password": "secret123"}
        sanitized = audit_service._sanitize_details(details)

        assert sanitized["email"] == "reader@example.com"
        assert sanitized["password"] == "[REDACTED - set]"

    def test_sanitize_token_fields(self, audit_service):
        details = {"access_token": "abc123", "refresh_token": None, "session_id": "s1"}
        sanitized = audit_service._sanitize_details(details)

        assert sanitized["access_token"] == "[REDACTED - set]"
        assert sanitized["refresh_token"] == "[REDACTED - unset]"
        assert sanitized["session_id"] == "s1"

    def test_sanitize_nested(self, audit_service):
        """Test that nested dicts are sanitized too."""
        details = {"request": {"password_hash": "$argon2id$...", "role": "reader"}}
        sanitized = audit_service._sanitize_details(details)

        assert sanitized["request"]["password_hash"] == "[REDACTED - set]"
        assert sanitized["request"]["role"] == "reader"


class TestAuditServiceLogging:
    """Tests for the emitted log records."""

    def test_log_entry_structure(self, caplog):
        user_id = uuid4()
        actor_id = uuid4()
        service = AuditService()

        with caplog.at_level(logging.INFO, logger="versenest.audit"):
            entry = service.log(
                AuditAction.ADMIN_BAN,
                user_id,
                actor_id=actor_id,
                ip_address="203.0.113.7",
                reason="spam",
                details={"revoked": 2},
            )

        assert entry["action"] == "admin.ban"
        assert entry["user_id"] == str(user_id)
        assert entry["actor_id"] == str(actor_id)
        assert entry["reason"] == "spam"
        assert entry["details"] == {"revoked": 2}
        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.event == entry

    def test_failures_logged_as_warning(self, caplog):
        service = AuditService()
        with caplog.at_level(logging.INFO, logger="versenest.audit"):
            service.log(AuditAction.LOGIN_FAILED, ip_address="203.0.113.7", reason="bad_password")
            service.log(AuditAction.REFRESH_REUSE_DETECTED, uuid4())

        assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.WARNING]

    def test_actor_omitted_when_same_as_subject(self):
        user_id = uuid4()
        entry = AuditService().log(AuditAction.LOGOUT, user_id, actor_id=user_id)
        assert "actor_id" not in entry
