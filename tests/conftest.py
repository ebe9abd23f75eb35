"""
Pytest configuration and fixtures

The VALD platform is faked in memory (tests/vendor_helpers.py) and served
through httpx.MockTransport, so no test ever touches the network.
"""
import pytest
import sys
import os

import httpx

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.rate_limit import SlidingWindowRateLimiter
from services.vald.client import ValdClient
from services.vald.models import TenantRole
from services.vald.token_broker import TokenBroker
from tests.vendor_helpers import PRIMARY_TENANT, SECONDARY_TENANT, FakeVendor, make_tenant


@pytest.fixture
def vendor():
    return FakeVendor()


@pytest.fixture
def http(vendor):
    return httpx.AsyncClient(transport=httpx.MockTransport(vendor.handler))


@pytest.fixture
def primary_tenant():
    return make_tenant(PRIMARY_TENANT, TenantRole.PRIMARY)


@pytest.fixture
def secondary_tenant():
    return make_tenant(SECONDARY_TENANT, TenantRole.SECONDARY)


@pytest.fixture
def tenants(primary_tenant, secondary_tenant):
    return [primary_tenant, secondary_tenant]


@pytest.fixture
def vald_client(tenants, http):
    """Client over both fake tenants with a limiter that never waits in practice."""
    broker = TokenBroker(tenants, http, refresh_buffer_s=300)
    limiter = SlidingWindowRateLimiter(max_requests=1000, window_s=5.0, safety_margin_s=0.1)
    return ValdClient(tenants, http, broker, limiter)
