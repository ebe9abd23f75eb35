"""
Tests for the VALD client plumbing: tenant loading, request pipeline and
the attempt() failure policy.
"""

from datetime import datetime, timezone

import httpx
import pytest

from core.config import Settings
from core.rate_limit import SlidingWindowRateLimiter
from services.vald.client import FetchFailed, ValdClient, parse_vendor_datetime
from services.vald.models import TenantRole
from services.vald.tenants import load_tenant_credentials
from services.vald.token_broker import AuthenticationFailed, TokenBroker
from tests.vendor_helpers import PRIMARY_TENANT, SECONDARY_TENANT


def make_settings(**overrides):
    values = {
        "VALD_API_KEY": '"key-1"',
        "VALD_API_SECRET": "secret-1",
        "TENANT_ID": "tenant-1",
        "VALD_API_KEY_2": None,
        "VALD_API_SECRET_2": None,
        "TENANT_ID_2": None,
    }
    values.update(overrides)
    return Settings(**values)


class TestLoadTenantCredentials:
    def test_primary_only(self):
        tenants = load_tenant_credentials(make_settings())

        assert len(tenants) == 1
        assert tenants[0].role is TenantRole.PRIMARY
        assert tenants[0].client_id == "key-1"

    def test_secondary_when_fully_configured(self):
        config = make_settings(VALD_API_KEY_2="key-2", VALD_API_SECRET_2="secret-2", TENANT_ID_2="tenant-2")

        tenants = load_tenant_credentials(config)

        assert [t.tenant_id for t in tenants] == ["tenant-1", "tenant-2"]
        assert tenants[1].role is TenantRole.SECONDARY
        assert not tenants[1].is_primary

    def test_partial_secondary_is_ignored(self):
        tenants = load_tenant_credentials(make_settings(VALD_API_KEY_2="key-2", TENANT_ID_2="tenant-2"))

        assert len(tenants) == 1


class TestParseVendorDatetime:
    def test_trailing_z(self):
        assert parse_vendor_datetime("2025-01-01T10:00:00Z") == datetime(2025, 1, 1, 10, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_vendor_datetime("2025-01-01T10:00:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12])
    def test_invalid(self, value):
        assert parse_vendor_datetime(value) is None


class TestRequests:
    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, vendor, vald_client):
        await vald_client.list_groups(PRIMARY_TENANT)

        request = vendor.calls("groups")[0]
        assert request.headers["authorization"].startswith("Bearer token-")

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_failed(self, vendor, vald_client):
        vendor.failures[("groups", PRIMARY_TENANT)] = 500

        with pytest.raises(FetchFailed) as exc_info:
            await vald_client.list_groups(PRIMARY_TENANT)
        assert "HTTP 500" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_unauthorized_drops_cached_token(self, vendor, vald_client):
        await vald_client.list_groups(PRIMARY_TENANT)
        vendor.failures[("groups", PRIMARY_TENANT)] = 401

        with pytest.raises(FetchFailed):
            await vald_client.list_groups(PRIMARY_TENANT)

        del vendor.failures[("groups", PRIMARY_TENANT)]
        await vald_client.list_groups(PRIMARY_TENANT)
        assert len(vendor.token_requests) == 2

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self, tenants):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"access_token": "abc", "expires_in": 7200})
            return httpx.Response(200, text="<html>maintenance</html>")

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = ValdClient(
            tenants, http, TokenBroker(tenants, http, refresh_buffer_s=300),
            SlidingWindowRateLimiter(max_requests=100, window_s=5.0, safety_margin_s=0.1),
        )

        with pytest.raises(FetchFailed):
            await client.list_groups(PRIMARY_TENANT)

    @pytest.mark.asyncio
    async def test_timeout_raises_fetch_failed(self, tenants):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"access_token": "abc", "expires_in": 7200})
            raise httpx.ReadTimeout("timed out", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = ValdClient(
            tenants, http, TokenBroker(tenants, http, refresh_buffer_s=300),
            SlidingWindowRateLimiter(max_requests=100, window_s=5.0, safety_margin_s=0.1),
        )

        with pytest.raises(FetchFailed) as exc_info:
            await client.get_trials(PRIMARY_TENANT, "t1")
        assert "ReadTimeout" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_every_request_takes_a_rate_limit_slot(self, vendor, vald_client):
        await vald_client.list_groups(PRIMARY_TENANT)
        await vald_client.list_groups(PRIMARY_TENANT)
        await vald_client.list_groups(SECONDARY_TENANT)

        assert vald_client.rate_limiter.pending(PRIMARY_TENANT) == 2
        assert vald_client.rate_limiter.pending(SECONDARY_TENANT) == 1


class TestAttempt:
    @pytest.mark.asyncio
    async def test_success(self, vendor, vald_client):
        vendor.groups[PRIMARY_TENANT] = [{"id": "g1", "name": "Pro"}]

        outcome = await vald_client.attempt(vald_client.list_groups(PRIMARY_TENANT), PRIMARY_TENANT, "groups")

        assert outcome.ok
        assert outcome.data == [{"id": "g1", "name": "Pro"}]

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_failed_outcome(self, vendor, vald_client):
        vendor.failures[("groups", PRIMARY_TENANT)] = 503

        outcome = await vald_client.attempt(vald_client.list_groups(PRIMARY_TENANT), PRIMARY_TENANT, "groups")

        assert not outcome.ok
        assert outcome.data is None
        assert outcome.error == "HTTP 503"

    @pytest.mark.asyncio
    async def test_secondary_auth_failure_becomes_failed_outcome(self, vendor, vald_client):
        vendor.rejected_client_ids.add(f"key-{SECONDARY_TENANT}")

        outcome = await vald_client.attempt(
            vald_client.list_groups(SECONDARY_TENANT), SECONDARY_TENANT, "groups"
        )

        assert outcome.outcome == "failed"

    @pytest.mark.asyncio
    async def test_primary_auth_failure_propagates(self, vendor, vald_client):
        vendor.rejected_client_ids.add(f"key-{PRIMARY_TENANT}")

        with pytest.raises(AuthenticationFailed):
            await vald_client.attempt(vald_client.list_groups(PRIMARY_TENANT), PRIMARY_TENANT, "groups")
