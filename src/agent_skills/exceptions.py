"""Centralized exception hierarchy for the agent-skills package.

All domain-specific exceptions inherit from ``AgentSkillsError`` so the CLI
can map the entire family to exit code 1 with a single ``except`` clause.
"""

from __future__ import annotations

from typing import Any


class AgentSkillsError(Exception):
    """Base exception for all agent-skills errors."""


def format_errors(errors: list[dict[str, Any]]) -> str:
    """Render GraphQL errors one per line as ``message at a.b.c``."""
    lines = []
    for error in errors:
        path = error.get("path")
        suffix = f" at {'.'.join(str(p) for p in path)}" if path else ""
        lines.append(f"{error.get('message', '')}{suffix}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Request engine errors
# ---------------------------------------------------------------------------


class TransportError(AgentSkillsError):
    """Raised when an HTTP call fails terminally.

    Either the status was not retryable, or a retryable condition (network
    failure, 429/5xx, unparseable body) outlasted the retry budget.

    Attributes:
        status_code: HTTP status of the last attempt, ``None`` for network
            failures.
        attempts: Number of HTTP attempts that were made.
        retryable: Whether the terminal cause belongs to a retryable class.
        retry_after_ms: Server-declared ``Retry-After`` in milliseconds.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        attempts: int = 1,
        retryable: bool = False,
        retry_after_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts
        self.retryable = retryable
        self.retry_after_ms = retry_after_ms


class DeadlineExceededError(AgentSkillsError):
    """Raised when a caller-supplied deadline passes between attempts."""


# ---------------------------------------------------------------------------
# Pagination errors
# ---------------------------------------------------------------------------


class ApplicationError(AgentSkillsError):
    """Raised when a response body carries application-level errors.

    The original vendor messages are preserved both in ``errors`` and in the
    exception text so quota, auth and validation problems stay
    distinguishable.
    """

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        super().__init__("GraphQL error: " + format_errors(errors))


class ShapeError(AgentSkillsError):
    """Raised when a collection path does not resolve in a response."""


# ---------------------------------------------------------------------------
# Skill errors (stable codes for CLI output)
# ---------------------------------------------------------------------------


ERROR_CODES: dict[str, tuple[str, str]] = {
    "SLACK_AUTH_MISSING": (
        "No Slack workspace tokens configured",
        'Set AGENT_SKILLS_ACCOUNTS__SLACK_WORKSPACES (JSON: {"alias": "xoxb-..."}) '
        "or AGENT_SKILLS_ACCOUNTS__SLACK_BOT_TOKEN for a single workspace",
    ),
    "SLACK_WORKSPACES_INVALID": (
        "Slack workspace configuration is invalid",
        'Workspaces must be a JSON object: {"personal": "xoxb-...", "company": "xoxb-..."}',
    ),
    "SLACK_WORKSPACE_AMBIGUOUS": (
        "Multiple workspaces configured but cannot determine which to use",
        "Pass --account with one of the available workspace aliases",
    ),
    "SLACK_WORKSPACE_NOT_FOUND": (
        "Specified workspace not found in configuration",
        "Check the workspace alias matches a configured key",
    ),
    "ASANA_AUTH_MISSING": (
        "No Asana accounts configured",
        'Set AGENT_SKILLS_ACCOUNTS__ASANA_ACCOUNTS as JSON: {"work": "0/..."}',
    ),
    "ASANA_AUTH_INVALID": (
        "Asana account configuration is invalid",
        "Accounts must be a JSON object mapping names to personal access tokens",
    ),
    "ASANA_ACCOUNT_AMBIGUOUS": (
        "Multiple Asana accounts configured but none specified",
        "Pass --account with one of the available account names",
    ),
    "ASANA_ACCOUNT_NOT_FOUND": (
        "Specified Asana account not found in configuration",
        "Check the configured Asana account names",
    ),
    "ITERABLE_AUTH_MISSING": (
        "No Iterable accounts configured",
        'Set AGENT_SKILLS_ACCOUNTS__ITERABLE_ACCOUNTS as JSON: {"prod": "your_api_key"}',
    ),
    "ITERABLE_AUTH_INVALID": (
        "Iterable account configuration is invalid",
        "Accounts must be a JSON object mapping names to API keys",
    ),
    "ITERABLE_ACCOUNT_AMBIGUOUS": (
        "Multiple Iterable accounts configured but none specified",
        "Pass --account with one of the available account names",
    ),
    "ITERABLE_ACCOUNT_NOT_FOUND": (
        "Specified Iterable account not found in configuration",
        "Check the configured Iterable account names",
    ),
    "BOULEVARD_ENV_INVALID": (
        "Invalid Boulevard environment",
        "Use 'sandbox' or 'prod'",
    ),
    "BOULEVARD_ARGS_INVALID": (
        "Invalid or missing arguments",
        "Run the command with --help and provide the required options",
    ),
    "BOULEVARD_AUTH_MISSING": (
        "No Boulevard credential configured",
        "Pass --token or set AGENT_SKILLS_BOULEVARD__TOKEN to the encoded Basic credential",
    ),
}


class SkillError(AgentSkillsError):
    """Error with a stable code and a remediation hint.

    Args:
        code: Key into ``ERROR_CODES``. Unknown codes degrade to
            ``UNKNOWN_ERROR`` instead of failing.
        details: Optional detail appended to the base message.
    """

    def __init__(self, code: str, details: str | None = None) -> None:
        definition = ERROR_CODES.get(code)
        if definition is None:
            message = f"Unknown error code: {code}"
            self.code = "UNKNOWN_ERROR"
            self.remediation = "Check the error details"
        else:
            base, remediation = definition
            message = f"{base}: {details}" if details else base
            self.code = code
            self.remediation = remediation
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": str(self),
            "remediation": self.remediation,
        }
