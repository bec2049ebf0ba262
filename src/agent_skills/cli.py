"""Typer CLI entry point for agent-skills.

JSON results go to stdout; errors and diagnostics go to stderr so agents
can parse stdout directly. Exit code is 0 on success and 1 on any
unrecovered error.
"""

from __future__ import annotations

import asyncio
import json
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel

from agent_skills import __version__
from agent_skills.accounts import (
    POLICIES,
    accounts_from_settings,
    available_accounts,
    resolve_account,
)
from agent_skills.boulevard.diff import diff_services, fetch_catalog
from agent_skills.boulevard.endpoints import get_admin_url, get_client_url
from agent_skills.boulevard.queries import COLLECTIONS
from agent_skills.config import Settings, format_validation_error
from agent_skills.engine import RequestEngine
from agent_skills.exceptions import AgentSkillsError, SkillError, format_errors
from agent_skills.logging import configure_logging, skill_logging_context
from agent_skills.pagination import walk_pages

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

err_console = Console(stderr=True)

app = typer.Typer(
    name="agent-skills",
    help="Vendor API skills for coding agents (JSON on stdout).",
    no_args_is_help=True,
)


class Vendor(StrEnum):
    slack = "slack"
    asana = "asana"
    iterable = "iterable"


class Api(StrEnum):
    admin = "admin"
    client = "client"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(config_path: Path | None = None, **overrides: Any) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _setup(config: Path | None, verbose: bool) -> Settings:
    settings = _load_settings(config)
    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        verbose=verbose,
    )
    logger.debug(
        "settings_loaded",
        config=str(config) if config else None,
        env=settings.boulevard.env,
        max_retries=settings.retry.max_retries,
    )
    return settings


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _fail(exc: AgentSkillsError) -> typer.Exit:
    """Report an error on stderr and return the exit to raise."""
    if isinstance(exc, SkillError):
        detail = exc.to_dict()
    else:
        detail = {"code": type(exc).__name__, "message": str(exc)}
    err_console.print_json(json.dumps(detail))
    return typer.Exit(code=1)


def _parse_variables(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        variables = json.loads(raw)
    except ValueError as exc:
        raise SkillError(
            "BOULEVARD_ARGS_INVALID", f"--variables is not valid JSON: {exc}"
        ) from exc
    if not isinstance(variables, dict):
        raise SkillError("BOULEVARD_ARGS_INVALID", "--variables must be a JSON object")
    return variables


def _endpoint(settings: Settings, env: str | None, api: Api, business_id: str | None) -> str:
    env = env or settings.boulevard.env
    if api is Api.client:
        return get_client_url(env, business_id or settings.boulevard.business_id)
    return get_admin_url(env)


def _token(settings: Settings, token: str | None) -> str:
    resolved = token or settings.boulevard.token
    if not resolved:
        raise SkillError("BOULEVARD_AUTH_MISSING")
    return resolved


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config YAML file.")
]
EnvOption = Annotated[
    str | None, typer.Option("--env", "-e", help="Environment: 'sandbox' or 'prod'.")
]
TokenOption = Annotated[
    str | None,
    typer.Option("--token", help="Encoded Basic credential (overrides config)."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show retry, cost and pagination progress."),
]


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"agent-skills {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """agent-skills global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def query(
    query_text: Annotated[
        str, typer.Option("--query", "-q", help="GraphQL query or mutation.")
    ],
    variables: Annotated[
        str | None,
        typer.Option("--variables", help="JSON-encoded query variables."),
    ] = None,
    env: EnvOption = None,
    api: Annotated[Api, typer.Option("--api", help="Admin or client API.")] = Api.admin,
    business_id: Annotated[
        str | None,
        typer.Option("--business-id", help="Business ID (client API only)."),
    ] = None,
    token: TokenOption = None,
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", min=0, help="Retry budget override."),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run a raw GraphQL query and print its data as JSON."""
    settings = _setup(config, verbose)

    async def _run() -> Any:
        endpoint = _endpoint(settings, env, api, business_id)
        async with RequestEngine.from_settings(
            endpoint, _token(settings, token), settings
        ) as engine:
            return await engine.execute(
                query_text,
                _parse_variables(variables),
                max_retries=max_retries,
                verbose=verbose,
            )

    try:
        with skill_logging_context("boulevard", "query"):
            response = asyncio.run(_run())
    except AgentSkillsError as exc:
        raise _fail(exc) from exc

    # Partial data is still printed when errors are present.
    _emit(response.data)
    if response.errors:
        err_console.print(f"GraphQL errors:\n{format_errors(response.errors)}")
        raise typer.Exit(code=1)


@app.command(name="list")
def list_collection(
    collection: Annotated[
        str | None,
        typer.Argument(help=f"Built-in collection: {', '.join(COLLECTIONS)}."),
    ] = None,
    query_text: Annotated[
        str | None,
        typer.Option("--query", "-q", help="Custom query taking $first and $after."),
    ] = None,
    path: Annotated[
        str | None,
        typer.Option("--path", help="Dot-separated connection path for --query."),
    ] = None,
    page_size: Annotated[
        int | None, typer.Option("--page-size", min=1, help="Items per page.")
    ] = None,
    max_pages: Annotated[
        int | None, typer.Option("--max-pages", min=1, help="Safety valve on pages.")
    ] = None,
    env: EnvOption = None,
    token: TokenOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Fetch every page of a collection and print the nodes as JSON."""
    settings = _setup(config, verbose)

    try:
        if query_text:
            if not path:
                raise SkillError("BOULEVARD_ARGS_INVALID", "--path is required with --query")
            template, connection_path = query_text, path
        elif collection in COLLECTIONS:
            template, connection_path = COLLECTIONS[collection]
        else:
            raise SkillError(
                "BOULEVARD_ARGS_INVALID",
                f"Unknown collection {collection!r}; pass one of "
                f"{', '.join(COLLECTIONS)} or --query with --path",
            )

        async def _run() -> Any:
            endpoint = _endpoint(settings, env, Api.admin, None)
            async with RequestEngine.from_settings(
                endpoint, _token(settings, token), settings
            ) as engine:
                return await walk_pages(
                    engine,
                    template,
                    connection_path,
                    page_size=page_size or settings.pagination.page_size,
                    max_pages=max_pages or settings.pagination.max_pages,
                    verbose=verbose,
                )

        with skill_logging_context("boulevard", "list", path=connection_path):
            result = asyncio.run(_run())
    except AgentSkillsError as exc:
        raise _fail(exc) from exc

    if result.truncated:
        err_console.print(
            f"[yellow]Warning: stopped after {result.pages} pages; "
            "results may be incomplete.[/yellow]"
        )
    _emit(result.items)


@app.command(name="diff-services")
def diff_services_cmd(
    source_env: Annotated[str, typer.Option("--source-env", help="Source environment.")],
    source_token: Annotated[
        str,
        typer.Option(
            "--source-token",
            envvar="AGENT_SKILLS_SOURCE_TOKEN",
            help="Source encoded Basic credential.",
        ),
    ],
    target_env: Annotated[str, typer.Option("--target-env", help="Target environment.")],
    target_token: Annotated[
        str,
        typer.Option(
            "--target-token",
            envvar="AGENT_SKILLS_TARGET_TOKEN",
            help="Target encoded Basic credential.",
        ),
    ],
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Compare service catalogs of two environments.

    Exits 1 when the target is missing categories, services or externalIds.
    """
    settings = _setup(config, verbose)

    async def _run() -> Any:
        async with (
            RequestEngine.from_settings(
                get_admin_url(source_env), source_token, settings
            ) as source,
            RequestEngine.from_settings(
                get_admin_url(target_env), target_token, settings
            ) as target,
        ):
            options = {
                "page_size": settings.pagination.page_size,
                "max_pages": settings.pagination.max_pages,
                "verbose": verbose,
            }
            return await asyncio.gather(
                fetch_catalog(source, **options), fetch_catalog(target, **options)
            )

    try:
        with skill_logging_context("boulevard", "diff-services"):
            source_catalog, target_catalog = asyncio.run(_run())
    except AgentSkillsError as exc:
        raise _fail(exc) from exc

    diff = diff_services(source_catalog, target_catalog)
    _emit(diff.model_dump(mode="json", by_alias=True))
    if diff.has_differences:
        raise typer.Exit(code=1)


@app.command()
def accounts(
    vendor: Annotated[Vendor, typer.Argument(help="Vendor whose accounts to resolve.")],
    account: Annotated[
        str | None, typer.Option("--account", "-a", help="Explicit account alias.")
    ] = None,
    hint: Annotated[
        str | None,
        typer.Option("--hint", help="Inferred selector, e.g. a Slack URL subdomain."),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Resolve which configured account a skill would use (token not shown)."""
    settings = _setup(config, verbose=False)
    policy = POLICIES[vendor.value]

    try:
        configured = accounts_from_settings(settings, policy)
        resolved = resolve_account(configured, policy, explicit=account, inferred=hint)
    except AgentSkillsError as exc:
        raise _fail(exc) from exc

    _emit(
        {
            "vendor": vendor.value,
            "account": resolved.name,
            "available": available_accounts(configured),
        }
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
