"""Boulevard URN helpers (``urn:blvd:<Object>:<uuid>``)."""

from __future__ import annotations


def strip_blvd_id(value: str) -> str:
    """``urn:blvd:Client:abc123`` -> ``abc123``; bare ids pass through."""
    if not value:
        return value
    return value.rsplit(":", 1)[-1]


def ensure_blvd_id(value: str, object_name: str) -> str:
    """``abc123`` -> ``urn:blvd:<object_name>:abc123``; URNs pass through."""
    if not value or value.startswith("urn:"):
        return value
    return f"urn:blvd:{object_name}:{value}"
