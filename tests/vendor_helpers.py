"""
Fake VALD platform for tests.

Serves the tenant, profile and ForceDecks endpoints from memory through
httpx.MockTransport.
"""
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs

import httpx

from services.vald.models import TenantCredential, TenantRole


AUTH_URL = "https://auth.vald.test/connect/token"
TENANT_URL = "https://tenants.vald.test"
PROFILE_URL = "https://profiles.vald.test"
FORCEDECKS_URL = "https://forcedecks.vald.test"

PRIMARY_TENANT = "tenant-primary"
SECONDARY_TENANT = "tenant-secondary"


def make_tenant(
    tenant_id: str = PRIMARY_TENANT,
    role: TenantRole = TenantRole.PRIMARY,
    client_id: Optional[str] = None,
    client_secret: str = "secret",
) -> TenantCredential:
    return TenantCredential(
        tenant_id=tenant_id,
        client_id=client_id if client_id is not None else f"key-{tenant_id}",
        client_secret=client_secret,
        auth_endpoint=AUTH_URL,
        tenant_base_url=TENANT_URL,
        profile_base_url=PROFILE_URL,
        forcedecks_base_url=FORCEDECKS_URL,
        role=role,
    )


def make_profile(profile_id: str, given: str, family: str) -> Dict[str, Any]:
    return {"profileId": profile_id, "givenName": given, "familyName": family}


def make_result(result: str, unit: Optional[str], value: Any, limb: str = "Trial") -> Dict[str, Any]:
    return {"limb": limb, "value": value, "definition": {"result": result, "unit": unit}}


class FakeVendor:
    """
    In-memory VALD endpoints.

    Data is keyed by tenant (and group / profile / test id). `failures`
    maps the same keys, prefixed with the endpoint kind, to an HTTP status
    to return instead, e.g. ("profiles", tenant_id, group_id): 500.
    """

    def __init__(self):
        self.groups: Dict[str, List[Dict[str, Any]]] = {}
        self.profiles: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.tests: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.trials: Dict[Tuple[str, str], Any] = {}
        self.failures: Dict[Tuple, int] = {}
        self.rejected_client_ids: set = set()
        self.expires_in = 7200
        self.token_requests: List[str] = []
        self.requests: List[httpx.Request] = []

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        client_id = form.get("client_id", [""])[0]
        self.token_requests.append(client_id)
        if client_id in self.rejected_client_ids:
            return httpx.Response(401, json={"error": "invalid_client"})
        return httpx.Response(
            200,
            json={
                "access_token": f"token-{client_id}-{len(self.token_requests)}",
                "expires_in": self.expires_in,
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(AUTH_URL):
            return self._token(request)

        self.requests.append(request)
        params = request.url.params
        path = request.url.path
        host = f"{request.url.scheme}://{request.url.host}"

        if host == TENANT_URL and path == "/groups":
            tenant_id = params.get("TenantId")
            key = ("groups", tenant_id)
            body = {"groups": self.groups.get(tenant_id, [])}
        elif host == PROFILE_URL and path == "/profiles":
            tenant_id = params.get("tenantId")
            group_id = params.get("groupId")
            key = ("profiles", tenant_id, group_id)
            body = {"profiles": self.profiles.get((tenant_id, group_id), [])}
        elif host == FORCEDECKS_URL and path == "/tests":
            tenant_id = params.get("TenantId")
            profile_id = params.get("ProfileId")
            key = ("tests", tenant_id, profile_id)
            rows = self.tests.get((tenant_id, profile_id))
            body = {"tests": rows} if rows else None
        elif host == FORCEDECKS_URL and path.endswith("/trials"):
            # /v2019q3/teams/{tenant}/tests/{test}/trials
            parts = path.strip("/").split("/")
            tenant_id, test_id = parts[2], parts[4]
            key = ("trials", tenant_id, test_id)
            body = self.trials.get((tenant_id, test_id), [])
        else:
            return httpx.Response(404)

        if key in self.failures:
            return httpx.Response(self.failures[key])
        if body is None:
            return httpx.Response(204)
        return httpx.Response(200, json=body)

    def calls(self, kind: str) -> List[httpx.Request]:
        suffix = {"groups": "/groups", "profiles": "/profiles", "tests": "/tests", "trials": "/trials"}[kind]
        return [r for r in self.requests if r.url.path.endswith(suffix)]

