"""Unit tests for agent_skills.exceptions."""

from __future__ import annotations

import pytest

from agent_skills.exceptions import (
    ERROR_CODES,
    AgentSkillsError,
    ApplicationError,
    DeadlineExceededError,
    ShapeError,
    SkillError,
    TransportError,
    format_errors,
)


class TestHierarchy:
    """Every domain error derives from AgentSkillsError."""

    @pytest.mark.parametrize(
        "exc_type", [TransportError, DeadlineExceededError, ShapeError, SkillError]
    )
    def test_subclasses(self, exc_type: type[Exception]) -> None:
        assert issubclass(exc_type, AgentSkillsError)

    def test_application_error_is_caught_by_base(self) -> None:
        with pytest.raises(AgentSkillsError):
            raise ApplicationError([{"message": "x"}])


class TestTransportError:
    """Transport metadata is kept on the exception."""

    def test_defaults(self) -> None:
        exc = TransportError("HTTP 400 Bad Request")
        assert exc.status_code is None
        assert exc.attempts == 1
        assert not exc.retryable
        assert exc.retry_after_ms is None

    def test_attributes(self) -> None:
        exc = TransportError(
            "HTTP 503", status_code=503, attempts=4, retryable=True, retry_after_ms=2000
        )
        assert exc.status_code == 503
        assert exc.attempts == 4
        assert exc.retryable
        assert exc.retry_after_ms == 2000


class TestApplicationError:
    """Vendor messages survive in text and structure."""

    def test_message_includes_paths(self) -> None:
        errors = [
            {"message": "Not authorized", "path": ["business", "services"]},
            {"message": "Quota"},
        ]
        exc = ApplicationError(errors)
        assert str(exc) == "GraphQL error: Not authorized at business.services\nQuota"
        assert exc.errors == errors

    def test_message_uses_shared_renderer(self) -> None:
        errors = [{"message": "Bad", "path": ["services", 0, "name"]}, {"message": "Other"}]
        assert format_errors(errors) == "Bad at services.0.name\nOther"
        assert str(ApplicationError(errors)) == "GraphQL error: " + format_errors(errors)

    def test_missing_message_renders_empty(self) -> None:
        assert format_errors([{"path": ["x"]}]) == " at x"


class TestSkillError:
    """Stable codes with remediation hints."""

    def test_known_code(self) -> None:
        exc = SkillError("ASANA_AUTH_MISSING")
        assert exc.code == "ASANA_AUTH_MISSING"
        assert str(exc) == ERROR_CODES["ASANA_AUTH_MISSING"][0]
        assert exc.remediation == ERROR_CODES["ASANA_AUTH_MISSING"][1]

    def test_details_appended(self) -> None:
        exc = SkillError("BOULEVARD_ENV_INVALID", "'staging'")
        assert str(exc) == "Invalid Boulevard environment: 'staging'"

    def test_unknown_code(self) -> None:
        exc = SkillError("NOPE")
        assert exc.code == "UNKNOWN_ERROR"
        assert str(exc) == "Unknown error code: NOPE"

    def test_to_dict(self) -> None:
        assert SkillError("SLACK_AUTH_MISSING").to_dict() == {
            "code": "SLACK_AUTH_MISSING",
            "message": ERROR_CODES["SLACK_AUTH_MISSING"][0],
            "remediation": ERROR_CODES["SLACK_AUTH_MISSING"][1],
        }

    @pytest.mark.parametrize(
        ("prefix", "noun"), [("SLACK", "WORKSPACE"), ("ASANA", "ACCOUNT"), ("ITERABLE", "ACCOUNT")]
    )
    def test_every_vendor_has_resolution_codes(self, prefix: str, noun: str) -> None:
        for suffix in ("AUTH_MISSING", f"{noun}_AMBIGUOUS", f"{noun}_NOT_FOUND"):
            assert f"{prefix}_{suffix}" in ERROR_CODES

    def test_slack_uses_workspace_codes(self) -> None:
        assert "SLACK_ACCOUNT_AMBIGUOUS" not in ERROR_CODES
        assert "SLACK_ACCOUNT_NOT_FOUND" not in ERROR_CODES
