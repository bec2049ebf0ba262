"""Integration tests for a two-environment catalog diff.

Both environments are fetched concurrently through real engines and
cursor walks; only HTTP is mocked.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import pytest
import respx
from httpx import Response

from agent_skills.boulevard.diff import Catalog, diff_services, fetch_catalog
from agent_skills.boulevard.endpoints import get_admin_url
from agent_skills.engine import RequestEngine
from agent_skills.exceptions import ApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.conftest import RecordingSleep

pytestmark = pytest.mark.integration

SANDBOX = get_admin_url("sandbox")
PROD = get_admin_url("prod")


def _service(
    name: str, category: str, external_id: str | None = None
) -> dict[str, Any]:
    return {
        "id": f"urn:blvd:Service:{name.lower().replace(' ', '-')}",
        "name": name,
        "externalId": external_id,
        "category": {"name": category},
    }


class _Environment:
    """Serves one environment's categories and cursor-paged services."""

    def __init__(
        self,
        page: Callable[..., dict[str, Any]],
        categories: list[str],
        service_pages: list[list[dict[str, Any]]],
        *,
        fail_first_services: bool = False,
    ) -> None:
        self.page = page
        self.categories = [{"id": f"cat-{i}", "name": n} for i, n in enumerate(categories)]
        self.service_pages = service_pages
        self.fail_first_services = fail_first_services
        self.service_cursors: list[str | None] = []

    def __call__(self, request: Any) -> Response:
        body = json.loads(request.content)
        if "ListServiceCategories" in body["query"]:
            return Response(
                200, json=self.page("serviceCategories", self.categories, has_next=False)
            )

        if self.fail_first_services:
            self.fail_first_services = False
            return Response(503, text="unavailable")

        cursor = body["variables"]["after"]
        self.service_cursors.append(cursor)
        index = 0 if cursor is None else int(cursor.removeprefix("p"))
        has_next = index + 1 < len(self.service_pages)
        return Response(
            200,
            json=self.page(
                "services",
                self.service_pages[index],
                has_next=has_next,
                end_cursor=f"p{index + 1}" if has_next else None,
            ),
        )


# ---- Source vs target -------------------------------------------------------


class TestCatalogDiffAcrossEnvironments:
    """Concurrent catalog fetches feed one diff."""

    @pytest.mark.asyncio()
    @respx.mock
    async def test_reports_missing_and_mismatched(
        self,
        page: Callable[..., dict[str, Any]],
        recorded_sleep: RecordingSleep,
    ) -> None:
        source_env = _Environment(
            page,
            ["Facials", "Massage"],
            [
                [_service("Peel", "Facials", "E1")],
                [_service("Hot Stone", "Massage", "E2"), _service("Brow Wax", "Facials", "E3")],
            ],
        )
        target_env = _Environment(
            page,
            ["Facials"],
            [[_service("Peel", "Facials", "E1"), _service("Brow  wax", "facials")]],
            fail_first_services=True,
        )
        source_route = respx.post(PROD).mock(side_effect=source_env)
        target_route = respx.post(SANDBOX).mock(side_effect=target_env)

        async with (
            RequestEngine(PROD, "prod-cred", sleep=recorded_sleep) as source,
            RequestEngine(SANDBOX, "sandbox-cred", sleep=recorded_sleep) as target,
        ):
            source_catalog, target_catalog = await asyncio.gather(
                fetch_catalog(source, page_size=1), fetch_catalog(target, page_size=1)
            )

        diff = diff_services(source_catalog, target_catalog)

        assert source_env.service_cursors == [None, "p1"]
        assert target_env.service_cursors == [None]
        assert recorded_sleep.delays_ms == [1000]
        assert {c.request.headers["Authorization"] for c in source_route.calls} == {
            "Basic prod-cred"
        }
        assert {c.request.headers["Authorization"] for c in target_route.calls} == {
            "Basic sandbox-cred"
        }

        assert diff.has_differences
        assert [c.name for c in diff.missing_categories] == ["Massage"]
        assert [s.external_id for s in diff.missing_services] == ["E2"]
        assert [m.source_external_id for m in diff.external_id_mismatches] == ["E3"]
        assert diff.external_id_mismatches[0].target_external_id is None
        assert diff.summary.source_services == 3
        assert diff.summary.target_services == 2

    @pytest.mark.asyncio()
    @respx.mock
    async def test_identical_catalogs_have_no_differences(
        self, page: Callable[..., dict[str, Any]]
    ) -> None:
        services = [[_service("Peel", "Facials", "E1")], [_service("Glow", "Facials")]]
        respx.post(PROD).mock(side_effect=_Environment(page, ["Facials"], services))
        respx.post(SANDBOX).mock(side_effect=_Environment(page, ["Facials"], services))

        async with (
            RequestEngine(PROD, "p") as source,
            RequestEngine(SANDBOX, "s") as target,
        ):
            catalogs = await asyncio.gather(fetch_catalog(source), fetch_catalog(target))

        diff = diff_services(*catalogs)

        assert not diff.has_differences
        assert diff.summary.source_services == diff.summary.target_services == 2

    @pytest.mark.asyncio()
    @respx.mock
    async def test_failure_in_one_environment_propagates(
        self, page: Callable[..., dict[str, Any]]
    ) -> None:
        respx.post(PROD).mock(
            side_effect=_Environment(page, ["Facials"], [[_service("Peel", "Facials")]])
        )
        respx.post(SANDBOX).mock(
            return_value=Response(200, json={"errors": [{"message": "Not authorized"}]})
        )

        async with (
            RequestEngine(PROD, "p") as source,
            RequestEngine(SANDBOX, "s") as target,
        ):
            source_result, target_result = await asyncio.gather(
                fetch_catalog(source), fetch_catalog(target), return_exceptions=True
            )

        assert isinstance(source_result, Catalog)
        assert [s["name"] for s in source_result.services] == ["Peel"]
        assert isinstance(target_result, ApplicationError)
        assert "Not authorized" in str(target_result)
