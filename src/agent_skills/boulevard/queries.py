"""Relay connection queries used by the Boulevard skill."""

from __future__ import annotations

LIST_SERVICE_CATEGORIES_QUERY = """
query ListServiceCategories($first: Int!, $after: String) {
  serviceCategories(first: $first, after: $after) {
    edges {
      node {
        id
        name
        active
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

LIST_SERVICES_QUERY = """
query ListServices($first: Int!, $after: String) {
  services(first: $first, after: $after) {
    edges {
      node {
        id
        active
        addon
        name
        description
        externalId
        categoryId
        category {
          id
          name
        }
        defaultDuration
        defaultPrice
        createdAt
        updatedAt
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

# name -> (query, connection path)
COLLECTIONS: dict[str, tuple[str, str]] = {
    "services": (LIST_SERVICES_QUERY, "services"),
    "categories": (LIST_SERVICE_CATEGORIES_QUERY, "serviceCategories"),
}
