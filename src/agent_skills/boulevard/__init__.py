"""Boulevard GraphQL skill: endpoints, queries and environment diffs."""
