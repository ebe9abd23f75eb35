"""
VALD Hub API client.

Thin async wrapper over the tenant, profile and ForceDecks endpoints.
Every request:
- obtains a bearer token from the TokenBroker
- waits for a rate-limiter slot for the tenant
- raises FetchFailed for HTTP, transport, timeout and payload errors

Batch callers wrap requests in `attempt()`, which turns per-item failures
into a tagged FetchOutcome so orchestration code can skip-and-log
uniformly. Only a primary-tenant AuthenticationFailed escapes `attempt()`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional

import httpx

from core.rate_limit import SlidingWindowRateLimiter
from services.vald.models import TenantCredential, TestSummary
from services.vald.token_broker import AuthenticationFailed, TokenBroker

logger = logging.getLogger(__name__)


class FetchFailed(RuntimeError):
    """A single vendor request failed (HTTP error, timeout, malformed body)."""

    def __init__(self, operation: str, reason: str, tenant_id: Optional[str] = None):
        super().__init__(f"{operation} failed: {reason}")
        self.operation = operation
        self.reason = reason
        self.tenant_id = tenant_id


@dataclass
class FetchOutcome:
    """Typed result of one attempted vendor call.

    Outcomes:
        "success": data is populated
        "failed":  request failed; error holds the reason, data is None
    """
    outcome: str          # "success" | "failed"
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == "success"


def parse_vendor_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by the vendor (trailing Z allowed)."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _extract_list(payload: Any, *keys: str) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
        return []
    raise ValueError(f"unexpected payload type {type(payload).__name__}")


class ValdClient:
    """Authenticated, rate-limited access to one or more VALD tenants."""

    def __init__(
        self,
        tenants: Iterable[TenantCredential],
        http: httpx.AsyncClient,
        token_broker: TokenBroker,
        rate_limiter: SlidingWindowRateLimiter,
    ):
        self.tenants: List[TenantCredential] = list(tenants)
        self._by_id: Dict[str, TenantCredential] = {t.tenant_id: t for t in self.tenants}
        self._http = http
        self.token_broker = token_broker
        self.rate_limiter = rate_limiter

    def tenant(self, tenant_id: str) -> TenantCredential:
        tenant = self._by_id.get(tenant_id)
        if tenant is None:
            raise FetchFailed("resolve tenant", f"unknown tenant {tenant_id!r}", tenant_id)
        return tenant

    async def attempt(self, request: Awaitable[Any], tenant_id: str, operation: str) -> FetchOutcome:
        """
        Await `request` and tag the result.

        Primary-tenant AuthenticationFailed propagates; every other failure
        is logged and returned as a failed outcome.
        """
        try:
            return FetchOutcome(outcome="success", data=await request)
        except AuthenticationFailed as e:
            tenant = self._by_id.get(tenant_id)
            if tenant is None or tenant.is_primary:
                raise
            logger.warning(f"{operation}: secondary tenant {tenant_id} unavailable ({e})")
            return FetchOutcome(outcome="failed", error=str(e))
        except FetchFailed as e:
            logger.warning(
                f"{operation}: {e.reason}",
                extra={"extra_fields": {"tenant_id": tenant_id, "operation": operation}},
            )
            return FetchOutcome(outcome="failed", error=e.reason)

    async def _get(
        self,
        tenant: TenantCredential,
        url: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        token = await self.token_broker.get_token(tenant.tenant_id)
        await self.rate_limiter.await_slot(tenant.tenant_id)

        try:
            response = await self._http.get(
                url,
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )
            if response.status_code == 401:
                # Token revoked early; the next call re-authenticates.
                self.token_broker.invalidate(tenant.tenant_id)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchFailed(operation, f"HTTP {e.response.status_code}", tenant.tenant_id) from e
        except httpx.HTTPError as e:
            raise FetchFailed(operation, f"{type(e).__name__}: {e}", tenant.tenant_id) from e

        # ForceDecks answers 204 when a query matches nothing.
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FetchFailed(operation, "response body is not JSON", tenant.tenant_id) from e

    async def list_groups(self, tenant_id: str) -> List[Dict[str, Any]]:
        tenant = self.tenant(tenant_id)
        payload = await self._get(
            tenant,
            f"{tenant.tenant_base_url}/groups",
            "list groups",
            params={"TenantId": tenant.tenant_id},
        )
        try:
            return _extract_list(payload, "groups")
        except ValueError as e:
            raise FetchFailed("list groups", str(e), tenant_id) from e

    async def list_profiles(self, tenant_id: str, group_id: str, limit: int) -> List[Dict[str, Any]]:
        tenant = self.tenant(tenant_id)
        payload = await self._get(
            tenant,
            f"{tenant.profile_base_url}/profiles",
            "list profiles",
            params={"tenantId": tenant.tenant_id, "groupId": group_id, "limit": limit},
        )
        try:
            return _extract_list(payload, "profiles")
        except ValueError as e:
            raise FetchFailed("list profiles", str(e), tenant_id) from e

    async def list_tests(
        self,
        tenant_id: str,
        modified_from: datetime,
        profile_id: Optional[str] = None,
        test_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[TestSummary]:
        tenant = self.tenant(tenant_id)
        params: Dict[str, Any] = {
            "TenantId": tenant.tenant_id,
            "ModifiedFromUtc": modified_from.isoformat().replace("+00:00", "Z"),
            "limit": limit,
            "IncludeExtendedParameters": "true",
            "IncludeAttributes": "true",
        }
        if profile_id:
            params["ProfileId"] = profile_id
        if test_type:
            params["TestType"] = test_type

        payload = await self._get(tenant, f"{tenant.forcedecks_base_url}/tests", "list tests", params=params)
        try:
            rows = _extract_list(payload, "tests", "data")
        except ValueError as e:
            raise FetchFailed("list tests", str(e), tenant_id) from e

        summaries = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            test_id = row.get("testId") or row.get("id")
            if not test_id:
                continue
            summaries.append(
                TestSummary(
                    tenant_id=tenant.tenant_id,
                    test_id=str(test_id),
                    profile_id=str(row.get("profileId") or profile_id or ""),
                    test_type=row.get("testType"),
                    recorded_at=parse_vendor_datetime(
                        row.get("recordedDateUtc") or row.get("testDate") or row.get("modifiedDateUtc")
                    ),
                    raw=row,
                )
            )
        return summaries

    async def get_trials(self, tenant_id: str, test_id: str) -> List[Dict[str, Any]]:
        tenant = self.tenant(tenant_id)
        payload = await self._get(
            tenant,
            f"{tenant.forcedecks_base_url}/v2019q3/teams/{tenant.tenant_id}/tests/{test_id}/trials",
            "get trials",
        )
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise FetchFailed("get trials", "expected a list of trials", tenant_id)
        for trial in payload:
            if not isinstance(trial, dict) or not isinstance(trial.get("results") or [], list):
                raise FetchFailed("get trials", "malformed trial payload", tenant_id)
        return payload
