"""Multi-account credential resolution for Slack, Asana and Iterable.

Each vendor accepts a JSON object mapping account aliases to tokens, e.g.
``{"personal": "xoxb-...", "company": "xoxb-..."}``. Parsing and
resolution are pure functions over that map; only
``accounts_from_settings`` looks at configuration.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from agent_skills.exceptions import SkillError

if TYPE_CHECKING:
    from agent_skills.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AccountPolicy:
    """Per-vendor parsing and resolution rules.

    Attributes:
        vendor: Vendor name, also the settings key prefix.
        error_prefix: Prefix of the ``SkillError`` codes raised.
        invalid_code: Code raised for malformed account maps.
        account_noun: Noun in the ambiguity and not-found codes, e.g.
            ``WORKSPACE`` gives ``SLACK_WORKSPACE_NOT_FOUND``.
        case_insensitive: Lower-case aliases and lookups.
        token_prefix: Required token prefix, if any.
        infer_from_hint: Match an inferred hint (e.g. a URL subdomain)
            against aliases before falling back to a single account.
    """

    vendor: str
    error_prefix: str
    invalid_code: str
    account_noun: str = "ACCOUNT"
    case_insensitive: bool = False
    token_prefix: str | None = None
    infer_from_hint: bool = False


SLACK = AccountPolicy(
    vendor="slack",
    error_prefix="SLACK",
    invalid_code="SLACK_WORKSPACES_INVALID",
    account_noun="WORKSPACE",
    case_insensitive=True,
    token_prefix="xoxb-",
    infer_from_hint=True,
)
ASANA = AccountPolicy(
    vendor="asana", error_prefix="ASANA", invalid_code="ASANA_AUTH_INVALID"
)
ITERABLE = AccountPolicy(
    vendor="iterable", error_prefix="ITERABLE", invalid_code="ITERABLE_AUTH_INVALID"
)

POLICIES: dict[str, AccountPolicy] = {p.vendor: p for p in (SLACK, ASANA, ITERABLE)}


@dataclass(frozen=True)
class ResolvedAccount:
    """Alias and token picked for one invocation."""

    name: str
    token: str


def parse_accounts(raw: str | None, policy: AccountPolicy) -> dict[str, str]:
    """Parse a JSON alias -> token map.

    Args:
        raw: JSON text; ``None`` or blank means no accounts.
        policy: Vendor rules for validation and alias normalization.

    Returns:
        Aliases mapped to stripped tokens, in input order.

    Raises:
        SkillError: With ``policy.invalid_code`` for invalid JSON, a
            non-object value, an empty token or a missing token prefix.
    """
    if raw is None or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise SkillError(policy.invalid_code, f"Invalid JSON: {exc}") from exc

    if not isinstance(parsed, dict):
        raise SkillError(policy.invalid_code, "Accounts must be a JSON object")

    accounts: dict[str, str] = {}
    for name, token in parsed.items():
        if not isinstance(token, str) or not token.strip():
            raise SkillError(policy.invalid_code, f'Invalid token for account "{name}"')
        token = token.strip()
        if policy.token_prefix and not token.startswith(policy.token_prefix):
            raise SkillError(
                policy.invalid_code,
                f'Token for "{name}" must start with {policy.token_prefix}',
            )
        alias = name.lower() if policy.case_insensitive else name
        accounts[alias] = token

    return accounts


def resolve_account(
    accounts: dict[str, str],
    policy: AccountPolicy,
    explicit: str | None = None,
    inferred: str | None = None,
) -> ResolvedAccount:
    """Pick the account for one invocation.

    Hint-inferring vendors (Slack) resolve in this order: explicit alias,
    exact hint match, substring match between hint and alias in either
    direction, the only configured account. Other vendors use the only
    configured account whatever was asked, otherwise require an explicit
    alias.

    Args:
        accounts: Parsed alias -> token map.
        policy: Vendor resolution rules.
        explicit: Alias given by the user (``--account``).
        inferred: Hint derived from the input, such as a URL subdomain.

    Raises:
        SkillError: ``<PREFIX>_AUTH_MISSING``, ``<PREFIX>_<NOUN>_NOT_FOUND``
            or ``<PREFIX>_<NOUN>_AMBIGUOUS``, where the noun is
            ``policy.account_noun``.
    """
    prefix = policy.error_prefix
    if not accounts:
        raise SkillError(f"{prefix}_AUTH_MISSING")
    ambiguous = f"{prefix}_{policy.account_noun}_AMBIGUOUS"
    not_found = f"{prefix}_{policy.account_noun}_NOT_FOUND"

    names = list(accounts)

    if not policy.infer_from_hint:
        if len(accounts) == 1:
            return ResolvedAccount(names[0], accounts[names[0]])
        if not explicit:
            raise SkillError(ambiguous, f"Available accounts: {', '.join(names)}")
        if explicit not in accounts:
            raise SkillError(not_found, f'"{explicit}" not in [{", ".join(names)}]')
        return ResolvedAccount(explicit, accounts[explicit])

    if explicit:
        alias = explicit.lower() if policy.case_insensitive else explicit
        if alias not in accounts:
            raise SkillError(not_found, f'"{explicit}" not in [{", ".join(names)}]')
        return ResolvedAccount(alias, accounts[alias])

    if inferred:
        hint = inferred.lower() if policy.case_insensitive else inferred
        if hint in accounts:
            return ResolvedAccount(hint, accounts[hint])
        for alias, token in accounts.items():
            if alias in hint or hint in alias:
                logger.debug("account_inferred", vendor=policy.vendor, alias=alias)
                return ResolvedAccount(alias, token)

    if len(accounts) == 1:
        return ResolvedAccount(names[0], accounts[names[0]])

    raise SkillError(ambiguous, ", ".join(names))


def accounts_from_settings(settings: Settings, policy: AccountPolicy) -> dict[str, str]:
    """Load the configured account map for a vendor.

    Slack falls back to a single ``slack_bot_token`` under the alias
    ``default`` when no workspace map is configured.
    """
    configured = settings.accounts
    if policy.vendor == "slack":
        if configured.slack_workspaces:
            return parse_accounts(configured.slack_workspaces, policy)
        if configured.slack_bot_token:
            return {"default": configured.slack_bot_token.strip()}
        return {}
    if policy.vendor == "asana":
        return parse_accounts(configured.asana_accounts, policy)
    if policy.vendor == "iterable":
        return parse_accounts(configured.iterable_accounts, policy)
    msg = f"Unknown vendor: {policy.vendor!r}"
    raise ValueError(msg)


def available_accounts(accounts: dict[str, str]) -> list[str]:
    """Aliases worth offering to a user (the implicit ``default`` is hidden)."""
    return [name for name in accounts if name != "default"]
