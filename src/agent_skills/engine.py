"""Rate-limit aware GraphQL/REST request engine.

One logical call may span several HTTP attempts. The retry loop is driven
by ``tenacity.AsyncRetrying``; the decision for each attempt comes from
``agent_skills.retry.decide_retry`` so transport failures (network errors,
429/5xx, unparseable bodies) and in-body rate-limit errors share a single
budget of ``max_retries`` retries.

Application errors that are not rate-limit signatures are returned to the
caller verbatim and never retried.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from agent_skills.exceptions import DeadlineExceededError, TransportError
from agent_skills.retry import (
    RetryDecision,
    RetryPolicy,
    RetryReason,
    decide_retry,
    find_rate_limit_error,
    parse_retry_after,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from agent_skills.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_COST_HEADER = "x-query-complexity"
_DEFAULT_SNIPPET_LENGTH = 500


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


@dataclass
class EngineResponse:
    """Parsed body of the final attempt plus transport metadata."""

    body: dict[str, Any]
    status_code: int
    query_cost: str | None = None
    attempts: int = 1


class GraphQLResponse(BaseModel):
    """Result of one logical GraphQL operation."""

    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] = Field(default_factory=list)
    status_code: int = 200
    query_cost: str | None = Field(
        default=None, description="Vendor query cost header, for diagnostics."
    )
    attempts: int = 1


def has_errors(response: GraphQLResponse) -> bool:
    return bool(response.errors)


# ---------------------------------------------------------------------------
# Internal attempt bookkeeping
# ---------------------------------------------------------------------------


class _RetryableFailure(Exception):
    """A failed attempt belonging to a retryable class."""

    def __init__(
        self,
        reason: RetryReason,
        message: str,
        *,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms


@dataclass
class _Call:
    method: str
    url: str
    policy: RetryPolicy
    verbose: bool
    deadline: float | None
    json_body: Any = None
    params: dict[str, Any] | None = None
    attempts: int = 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RequestEngine:
    """Issue GraphQL/REST calls against one endpoint with bounded retries.

    The underlying ``httpx.AsyncClient`` (and its connection pool) may be
    shared by several concurrent pagination walks; the engine keeps no
    per-call state on the instance.

    Args:
        endpoint: Full URL of the GraphQL endpoint (or REST base URL).
        credential: Opaque credential placed after ``auth_scheme`` in the
            ``Authorization`` header.
        auth_scheme: ``"Basic"`` or ``"Bearer"``.
        policy: Retry policy; defaults to 3 retries with 1s..10s backoff.
        client: Optional pre-built client. When omitted the engine owns and
            closes its own.
        timeout: Per-request timeout in seconds for an owned client.
        cost_header: Response header carrying the vendor query cost.
        body_snippet_length: Characters of error bodies kept in messages.
        sleep: Async sleep used between attempts (injectable for tests).
        clock: Monotonic clock used for deadline checks.
    """

    def __init__(
        self,
        endpoint: str,
        credential: str,
        *,
        auth_scheme: str = "Basic",
        policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        cost_header: str = _DEFAULT_COST_HEADER,
        body_snippet_length: int = _DEFAULT_SNIPPET_LENGTH,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not endpoint:
            msg = "endpoint must be a non-empty URL"
            raise ValueError(msg)
        self.endpoint = endpoint
        self.policy = policy or RetryPolicy()
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"{auth_scheme} {credential}",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._cost_header = cost_header
        self._snippet_length = body_snippet_length
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        endpoint: str,
        credential: str,
        settings: Settings,
        **kwargs: Any,
    ) -> RequestEngine:
        """Build an engine from resolved settings."""
        return cls(
            endpoint,
            credential,
            policy=RetryPolicy.from_settings(settings.retry),
            timeout=settings.http.timeout,
            cost_header=settings.http.cost_header,
            body_snippet_length=settings.http.body_snippet_length,
            **kwargs,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> RequestEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- public API ---------------------------------------------------------

    async def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        max_retries: int | None = None,
        verbose: bool = False,
        deadline: float | None = None,
    ) -> GraphQLResponse:
        """Execute a GraphQL query or mutation.

        Returns normally whenever the final attempt produced a parseable
        body, even if that body carries application errors; callers must
        inspect ``errors``.

        Raises:
            ValueError: If ``query`` is empty.
            TransportError: On a non-retryable HTTP status, or when a
                retryable transport failure outlasts the budget.
            DeadlineExceededError: If ``deadline`` passes between attempts.
        """
        if not query:
            msg = "query must be a non-empty string"
            raise ValueError(msg)

        result = await self.request(
            "POST",
            json_body={"query": query, "variables": variables or {}},
            max_retries=max_retries,
            verbose=verbose,
            deadline=deadline,
        )
        body = result.body
        data = body.get("data")
        errors = body.get("errors")
        return GraphQLResponse(
            data=data if isinstance(data, dict) else None,
            errors=[e for e in errors if isinstance(e, dict)]
            if isinstance(errors, list)
            else [],
            status_code=result.status_code,
            query_cost=result.query_cost,
            attempts=result.attempts,
        )

    async def request(
        self,
        method: str,
        url: str | None = None,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
        max_retries: int | None = None,
        verbose: bool = False,
        deadline: float | None = None,
    ) -> EngineResponse:
        """Run one logical HTTP call through the retry loop.

        Args:
            method: HTTP method.
            url: Target URL; defaults to the engine endpoint.
            json_body: JSON-serializable request body.
            params: Query-string parameters.
            max_retries: Per-call override of the policy budget.
            verbose: Log cost headers and retry notices at INFO.
            deadline: Absolute deadline on the engine clock.

        Returns:
            The parsed body of the final attempt.
        """
        policy = self.policy
        if max_retries is not None:
            policy = dataclasses.replace(policy, max_retries=max_retries)

        call = _Call(
            method=method,
            url=url or self.endpoint,
            policy=policy,
            verbose=verbose,
            deadline=deadline,
            json_body=json_body,
            params=params,
        )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            retry=lambda rs: self._decide(call, rs).reason is not RetryReason.NONE,
            wait=lambda rs: self._decide(call, rs).delay_ms / 1000,
            before_sleep=lambda rs: self._before_sleep(call, rs),
            retry_error_callback=lambda rs: self._exhausted(call, rs),
            sleep=self._sleep,
        )
        response: EngineResponse = await retrying(self._attempt, call)
        return response

    # -- attempt and decision helpers ---------------------------------------

    async def _attempt(self, call: _Call) -> EngineResponse:
        self._check_deadline(call)
        call.attempts += 1

        try:
            response = await self._client.request(
                call.method,
                call.url,
                headers=self._headers,
                json=call.json_body,
                params=call.params,
            )
        except httpx.TransportError as exc:
            raise _RetryableFailure(
                RetryReason.NETWORK, f"{type(exc).__name__}: {exc}"
            ) from exc

        query_cost = response.headers.get(self._cost_header)
        if query_cost and call.verbose:
            logger.info("graphql_query_cost", cost=query_cost, url=call.url)

        text = response.text
        if not response.is_success:
            snippet = text[: self._snippet_length] if text else ""
            message = f"HTTP {response.status_code} {response.reason_phrase}"
            if snippet:
                message = f"{message}: {snippet}"
            if call.policy.is_retryable_status(response.status_code):
                raise _RetryableFailure(
                    RetryReason.HTTP_STATUS,
                    message,
                    status_code=response.status_code,
                    retry_after_ms=parse_retry_after(
                        response.headers.get("retry-after")
                    ),
                )
            raise TransportError(
                message,
                status_code=response.status_code,
                attempts=call.attempts,
                retryable=False,
            )

        try:
            body = json.loads(text) if text else {}
        except ValueError as exc:
            raise _RetryableFailure(
                RetryReason.INVALID_BODY,
                "Invalid JSON response from server",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise _RetryableFailure(
                RetryReason.INVALID_BODY,
                "Invalid JSON response from server",
                status_code=response.status_code,
            )

        return EngineResponse(
            body=body,
            status_code=response.status_code,
            query_cost=query_cost,
            attempts=call.attempts,
        )

    def _decide(self, call: _Call, retry_state: RetryCallState) -> RetryDecision:
        attempt = retry_state.attempt_number - 1
        outcome = retry_state.outcome
        if outcome is None:
            return RetryDecision(False, 0, RetryReason.NONE)

        if outcome.failed:
            exc = outcome.exception()
            if not isinstance(exc, _RetryableFailure):
                return RetryDecision(False, 0, RetryReason.NONE)
            return decide_retry(
                attempt=attempt,
                policy=call.policy,
                reason=exc.reason,
                retry_after_ms=exc.retry_after_ms,
            )

        result: EngineResponse = outcome.result()
        rate_limit_error = find_rate_limit_error(
            result.body.get("errors"), call.policy.rate_limit_marker
        )
        if rate_limit_error is None:
            return RetryDecision(False, 0, RetryReason.NONE)
        return decide_retry(
            attempt=attempt,
            policy=call.policy,
            reason=RetryReason.RATE_LIMITED,
            message=str(rate_limit_error.get("message", "")),
        )

    def _before_sleep(self, call: _Call, retry_state: RetryCallState) -> None:
        decision = self._decide(call, retry_state)
        self._check_deadline(call, upcoming_delay_ms=decision.delay_ms)

        outcome = retry_state.outcome
        detail = ""
        if outcome is not None and outcome.failed:
            detail = str(outcome.exception())
        log = logger.info if call.verbose else logger.debug
        log(
            "request_retry_scheduled",
            reason=str(decision.reason),
            delay_ms=decision.delay_ms,
            attempt=retry_state.attempt_number,
            max_retries=call.policy.max_retries,
            detail=detail,
        )

    def _exhausted(self, call: _Call, retry_state: RetryCallState) -> EngineResponse:
        outcome = retry_state.outcome
        assert outcome is not None
        if not outcome.failed:
            # Rate limit persisted past the budget: hand the body back as-is.
            logger.warning(
                "rate_limit_retries_exhausted",
                attempts=call.attempts,
                url=call.url,
            )
            result: EngineResponse = outcome.result()
            return result

        exc = outcome.exception()
        logger.warning(
            "request_retries_exhausted",
            attempts=call.attempts,
            url=call.url,
            error=str(exc),
        )
        if isinstance(exc, _RetryableFailure):
            raise TransportError(
                str(exc),
                status_code=exc.status_code,
                attempts=call.attempts,
                retryable=True,
                retry_after_ms=exc.retry_after_ms,
            ) from exc
        raise TransportError(str(exc), attempts=call.attempts) from exc

    def _check_deadline(self, call: _Call, upcoming_delay_ms: int = 0) -> None:
        if call.deadline is None:
            return
        now = self._clock()
        if now + upcoming_delay_ms / 1000 >= call.deadline:
            msg = (
                f"Deadline exceeded after {call.attempts} attempt(s) "
                f"against {call.url}"
            )
            raise DeadlineExceededError(msg)


async def execute_graphql(
    endpoint: str,
    credential: str,
    query: str,
    variables: dict[str, Any] | None = None,
    *,
    max_retries: int = 3,
    verbose: bool = False,
    **engine_kwargs: Any,
) -> GraphQLResponse:
    """One-shot GraphQL call with an engine that is closed afterwards."""
    async with RequestEngine(endpoint, credential, **engine_kwargs) as engine:
        return await engine.execute(
            query, variables, max_retries=max_retries, verbose=verbose
        )
