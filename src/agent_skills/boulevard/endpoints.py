"""Boulevard API endpoint builders.

Admin API:  ``https://sandbox.joinblvd.com/api/2020-01/admin`` (sandbox),
            ``https://dashboard.boulevard.io/api/2020-01/admin`` (prod).
Client API: ``.../api/2020-01/<business_id>/client`` on the same hosts.
"""

from __future__ import annotations

from agent_skills.exceptions import SkillError

API_VERSION = "2020-01"

_HOSTS: dict[str, str] = {
    "sandbox": "https://sandbox.joinblvd.com",
    "prod": "https://dashboard.boulevard.io",
}

ENDPOINTS: dict[str, dict[str, str]] = {
    env: {
        "admin": f"{host}/api/{API_VERSION}/admin",
        "client": f"{host}/api/{API_VERSION}/{{business_id}}/client",
    }
    for env, host in _HOSTS.items()
}


def _endpoints_for(env: str) -> dict[str, str]:
    endpoints = ENDPOINTS.get(env)
    if endpoints is None:
        raise SkillError("BOULEVARD_ENV_INVALID", f"{env!r}")
    return endpoints


def get_admin_url(env: str) -> str:
    return _endpoints_for(env)["admin"]


def get_client_url(env: str, business_id: str | None) -> str:
    endpoints = _endpoints_for(env)
    if not business_id:
        raise SkillError("BOULEVARD_ARGS_INVALID", "Business ID is required for Client API")
    return endpoints["client"].format(business_id=business_id)
