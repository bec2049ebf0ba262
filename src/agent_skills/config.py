"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``AGENT_SKILLS_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields
(e.g. ``AGENT_SKILLS_RETRY__MAX_RETRIES=5``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

try:
    from pydantic_settings import YamlConfigSettingsSource
except ImportError:  # pragma: no cover
    YamlConfigSettingsSource = None  # type: ignore[assignment, misc]

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class RetrySettings(BaseModel):
    """Request engine retry and backoff configuration."""

    max_retries: int = Field(default=3, ge=0)
    backoff_base_ms: int = Field(
        default=1000, ge=0, description="First exponential backoff step."
    )
    backoff_max_ms: int = Field(
        default=10_000, ge=0, description="Ceiling for exponential backoff."
    )
    rate_limit_fallback_ms: int = Field(
        default=500,
        ge=0,
        description="Wait used when a rate-limit message carries no wait hint.",
    )
    rate_limit_marker: str = Field(default="API limit exceeded", min_length=1)


class PaginationSettings(BaseModel):
    """Cursor pagination defaults."""

    page_size: int = Field(default=100, gt=0, le=1000)
    max_pages: int = Field(
        default=100, gt=0, description="Safety valve on pages per collection."
    )


class HTTPSettings(BaseModel):
    """Transport configuration shared by every skill."""

    timeout: float = Field(default=30.0, gt=0.0, description="Seconds per request.")
    cost_header: str = "x-query-complexity"
    body_snippet_length: int = Field(default=500, gt=0)


class BoulevardSettings(BaseModel):
    """Boulevard endpoint selection and credential."""

    env: Literal["sandbox", "prod"] = "sandbox"
    business_id: str | None = None
    token: str | None = Field(
        default=None, description="Pre-encoded Basic credential."
    )


class AccountSettings(BaseModel):
    """Multi-account credential maps (JSON objects of alias -> token)."""

    slack_workspaces: str | None = None
    slack_bot_token: str | None = None
    asana_accounts: str | None = None
    iterable_accounts: str | None = None


class LoggingSettings(BaseModel):
    """Logging / diagnostics configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``agent-skills.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``AGENT_SKILLS_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_SKILLS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="agent-skills.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    retry: RetrySettings = Field(default_factory=RetrySettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    boulevard: BoulevardSettings = Field(default_factory=BoulevardSettings)
    accounts: AccountSettings = Field(default_factory=AccountSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
        ]

        if YamlConfigSettingsSource is not None:
            yaml_file = cls._config_path_override or settings_cls.model_config.get(
                "yaml_file", "agent-skills.yaml"
            )
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file))

        return tuple(sources)

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message."""
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
