"""Shared pytest fixtures for the agent-skills test suite."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest

from agent_skills.engine import RequestEngine
from agent_skills.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

ENDPOINT = "https://sandbox.joinblvd.com/api/2020-01/admin"


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep real env vars and any local YAML/.env out of Settings."""
    for key in list(os.environ):
        if key.startswith("AGENT_SKILLS_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Async sleep stand-in that records requested delays in milliseconds."""

    def __init__(self) -> None:
        self.delays_ms: list[int] = []

    async def __call__(self, seconds: float) -> None:
        self.delays_ms.append(round(seconds * 1000))


@pytest.fixture()
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def make_engine(recorded_sleep: RecordingSleep) -> Callable[..., RequestEngine]:
    """Return a factory for engines that never really sleep."""

    def _factory(max_retries: int = 3, **kwargs: Any) -> RequestEngine:
        kwargs.setdefault("sleep", recorded_sleep)
        return RequestEngine(
            ENDPOINT,
            "dGVzdDp0ZXN0",
            policy=RetryPolicy(max_retries=max_retries),
            **kwargs,
        )

    return _factory


def connection_page(
    path: str,
    nodes: list[dict[str, Any]],
    *,
    has_next: bool,
    end_cursor: str | None = None,
) -> dict[str, Any]:
    """Build a GraphQL body with a Relay connection at a dot-separated path."""
    connection: dict[str, Any] = {
        "edges": [{"node": node} for node in nodes],
        "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor},
    }
    for key in reversed(path.split(".")):
        connection = {key: connection}
    return {"data": connection}


@pytest.fixture()
def page() -> Callable[..., dict[str, Any]]:
    return connection_page
