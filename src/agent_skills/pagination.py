"""Cursor pagination over Relay-style GraphQL connections.

A connection is ``{edges: [{node}], pageInfo: {hasNextPage, endCursor}}``
found at a dot-separated path inside ``data``. Pages are fetched strictly
one at a time because each request needs the previous page's cursor;
independent collections can be walked concurrently with
``fetch_collections``.

Page sizes default to 100 to stay well under vendor edge limits (Boulevard
caps connections at 1,000 edges).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from agent_skills.exceptions import ApplicationError, ShapeError

if TYPE_CHECKING:
    from agent_skills.engine import RequestEngine

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 100


@dataclass
class PaginationResult:
    """Items gathered by one walk, in server order."""

    items: list[dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False


@dataclass(frozen=True)
class CollectionSpec:
    """One collection to fetch in a concurrent batch."""

    name: str
    query_template: str
    collection_path: str
    extra_variables: dict[str, Any] = field(default_factory=dict)


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve a dot-separated path such as ``business.locations``.

    Returns ``None`` as soon as a segment is missing or the current value
    is not a mapping.
    """
    if obj is None or not path:
        return None
    current = obj
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


async def walk_pages(
    engine: RequestEngine,
    query_template: str,
    collection_path: str,
    extra_variables: dict[str, Any] | None = None,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
    verbose: bool = False,
    deadline: float | None = None,
) -> PaginationResult:
    """Fetch every page of a connection.

    Args:
        engine: Engine bound to the endpoint and credential.
        query_template: Query accepting ``$first`` and ``$after``.
        collection_path: Dot-separated path to the connection in ``data``.
        extra_variables: Variables sent with every page.
        page_size: Value of ``first`` for each page.
        max_pages: Safety valve on the number of pages.
        verbose: Log per-page progress at INFO.
        deadline: Absolute deadline forwarded to the engine.

    Returns:
        The accumulated items. ``truncated`` is set when ``max_pages`` was
        reached while the server still reported more pages.

    Raises:
        ApplicationError: A page carried application errors; items gathered
            so far are discarded.
        ShapeError: ``collection_path`` did not resolve to a connection, or
            a page reported more results without an ``endCursor``.
        TransportError: Propagated from the engine.
    """
    if page_size <= 0 or max_pages <= 0:
        msg = "page_size and max_pages must be positive"
        raise ValueError(msg)

    items: list[dict[str, Any]] = []
    cursor: str | None = None
    pages = 0
    has_more = True
    log = logger.info if verbose else logger.debug

    while pages < max_pages:
        variables = {
            **(extra_variables or {}),
            "first": page_size,
            "after": cursor,
        }
        response = await engine.execute(
            query_template, variables, verbose=verbose, deadline=deadline
        )
        if response.errors:
            raise ApplicationError(response.errors)

        connection = get_nested_value(response.data, collection_path)
        if not isinstance(connection, dict):
            msg = f"Connection not found at path: {collection_path}"
            raise ShapeError(msg)

        edges = connection.get("edges") or []
        for edge in edges:
            if isinstance(edge, dict) and edge.get("node") is not None:
                items.append(edge["node"])

        pages += 1
        log(
            "pagination_page_fetched",
            path=collection_path,
            page=pages,
            page_items=len(edges),
            total=len(items),
        )

        page_info = connection.get("pageInfo")
        if not isinstance(page_info, dict) or not page_info.get("hasNextPage"):
            has_more = False
            break
        next_cursor = page_info.get("endCursor")
        # The cursor only moves forward.
        if not next_cursor:
            msg = f"hasNextPage is true but endCursor is missing at {collection_path}"
            raise ShapeError(msg)
        cursor = next_cursor

    truncated = has_more and pages >= max_pages
    if truncated:
        logger.warning(
            "pagination_max_pages_reached",
            path=collection_path,
            max_pages=max_pages,
            total=len(items),
        )

    return PaginationResult(items=items, pages=pages, truncated=truncated)


async def fetch_all_pages(
    engine: RequestEngine,
    query_template: str,
    collection_path: str,
    extra_variables: dict[str, Any] | None = None,
    **options: Any,
) -> list[dict[str, Any]]:
    """Return every node of a connection (see ``walk_pages``)."""
    result = await walk_pages(
        engine, query_template, collection_path, extra_variables, **options
    )
    return result.items


async def fetch_collections(
    engine: RequestEngine,
    specs: list[CollectionSpec],
    **options: Any,
) -> dict[str, list[dict[str, Any]]]:
    """Walk several independent collections concurrently.

    Each walk owns its own cursor and accumulator; only the engine's
    connection pool is shared. The first failure propagates.
    """
    results = await asyncio.gather(
        *(
            fetch_all_pages(
                engine,
                spec.query_template,
                spec.collection_path,
                spec.extra_variables,
                **options,
            )
            for spec in specs
        )
    )
    return {spec.name: items for spec, items in zip(specs, results, strict=True)}
