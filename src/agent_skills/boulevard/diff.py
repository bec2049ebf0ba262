"""Compare service catalogs between two Boulevard environments.

Categories match by normalized name. Services match by ``externalId``
when present, otherwise by ``<category>/<name>``. A source service whose
name matches a target service lacking the externalId is reported as an
externalId mismatch rather than as missing.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agent_skills.boulevard.queries import (
    LIST_SERVICE_CATEGORIES_QUERY,
    LIST_SERVICES_QUERY,
)
from agent_skills.pagination import CollectionSpec, fetch_collections

if TYPE_CHECKING:
    from agent_skills.engine import RequestEngine

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MissingCategory(_CamelModel):
    name: str
    source_id: str | None = None
    active: bool | None = None


class MissingService(_CamelModel):
    name: str
    description: str | None = None
    category_name: str | None = None
    source_id: str | None = None
    external_id: str | None = None
    addon: bool | None = None
    active: bool | None = None
    default_duration: int | None = None
    default_price: int | None = None


class ExternalIdMismatch(_CamelModel):
    name: str
    category_name: str | None = None
    source_id: str | None = None
    source_external_id: str | None = None
    target_id: str | None = None
    target_external_id: str | None = None


class DiffSummary(_CamelModel):
    source_categories: int = 0
    source_services: int = 0
    target_categories: int = 0
    target_services: int = 0
    missing_categories: int = 0
    missing_services: int = 0
    external_id_mismatches: int = 0


class ServiceDiff(_CamelModel):
    """Differences found between a source and a target catalog."""

    summary: DiffSummary = Field(default_factory=DiffSummary)
    missing_categories: list[MissingCategory] = Field(default_factory=list)
    missing_services: list[MissingService] = Field(default_factory=list)
    external_id_mismatches: list[ExternalIdMismatch] = Field(default_factory=list)

    @property
    def has_differences(self) -> bool:
        return bool(
            self.missing_categories
            or self.missing_services
            or self.external_id_mismatches
        )


class Catalog(BaseModel):
    """Categories and services fetched from one environment."""

    categories: list[dict[str, Any]] = Field(default_factory=list)
    services: list[dict[str, Any]] = Field(default_factory=list)


def normalize_name(name: str | None) -> str:
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", name.strip().lower())


def _category_name(service: dict[str, Any]) -> str | None:
    category = service.get("category") or {}
    return category.get("name")


def _name_key(service: dict[str, Any]) -> str:
    return f"{normalize_name(_category_name(service))}/{normalize_name(service.get('name'))}"


def service_match_key(service: dict[str, Any]) -> str:
    external_id = service.get("externalId")
    if external_id:
        return f"externalId:{external_id}"
    return f"name:{_name_key(service)}"


def diff_services(source: Catalog, target: Catalog) -> ServiceDiff:
    """Find what the target environment lacks compared to the source."""
    target_categories = {normalize_name(c.get("name")) for c in target.categories}
    target_by_key = {service_match_key(s): s for s in target.services}
    target_by_name = {_name_key(s): s for s in target.services}

    missing_categories = [
        MissingCategory(
            name=category.get("name") or "",
            source_id=category.get("id"),
            active=category.get("active"),
        )
        for category in source.categories
        if normalize_name(category.get("name")) not in target_categories
    ]

    missing_services: list[MissingService] = []
    mismatches: list[ExternalIdMismatch] = []
    for service in source.services:
        if service_match_key(service) in target_by_key:
            continue

        by_name = target_by_name.get(_name_key(service))
        if by_name is None:
            missing_services.append(
                MissingService(
                    name=service.get("name") or "",
                    description=service.get("description"),
                    category_name=_category_name(service),
                    source_id=service.get("id"),
                    external_id=service.get("externalId"),
                    addon=service.get("addon"),
                    active=service.get("active"),
                    default_duration=service.get("defaultDuration"),
                    default_price=service.get("defaultPrice"),
                )
            )
        elif service.get("externalId") and not by_name.get("externalId"):
            mismatches.append(
                ExternalIdMismatch(
                    name=service.get("name") or "",
                    category_name=_category_name(service),
                    source_id=service.get("id"),
                    source_external_id=service.get("externalId"),
                    target_id=by_name.get("id"),
                    target_external_id=by_name.get("externalId"),
                )
            )

    missing_categories.sort(key=lambda c: c.name)
    missing_services.sort(key=lambda s: (s.category_name or "", s.name))
    mismatches.sort(key=lambda m: m.name)

    return ServiceDiff(
        summary=DiffSummary(
            source_categories=len(source.categories),
            source_services=len(source.services),
            target_categories=len(target.categories),
            target_services=len(target.services),
            missing_categories=len(missing_categories),
            missing_services=len(missing_services),
            external_id_mismatches=len(mismatches),
        ),
        missing_categories=missing_categories,
        missing_services=missing_services,
        external_id_mismatches=mismatches,
    )


async def fetch_catalog(engine: RequestEngine, **options: Any) -> Catalog:
    """Fetch categories and services of one environment concurrently."""
    collections = await fetch_collections(
        engine,
        [
            CollectionSpec(
                "categories", LIST_SERVICE_CATEGORIES_QUERY, "serviceCategories"
            ),
            CollectionSpec("services", LIST_SERVICES_QUERY, "services"),
        ],
        **options,
    )
    logger.debug(
        "catalog_fetched",
        endpoint=engine.endpoint,
        categories=len(collections["categories"]),
        services=len(collections["services"]),
    )
    return Catalog(**collections)
