"""
Aggregation session.

Owns the shared HTTP client and the stateful collaborators (token cache,
rate-limit windows) for one process or one batch run. Build it once and
pass it where it is needed; nothing here is a module-level singleton.
"""
import logging
from typing import Iterable, Optional

import httpx

from core.config import Settings, settings as default_settings
from core.rate_limit import SlidingWindowRateLimiter
from services.vald.athlete_directory import AthleteDirectory
from services.vald.client import ValdClient
from services.vald.fetch_orchestrator import FetchOrchestrator
from services.vald.models import TenantCredential
from services.vald.tenants import load_tenant_credentials
from services.vald.token_broker import TokenBroker

logger = logging.getLogger(__name__)


class AggregationSession:
    """Wires TokenBroker, rate limiter, client, directory and orchestrator."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
        tenants: Optional[Iterable[TenantCredential]] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        config = config or default_settings
        self.config = config
        self.tenants = list(tenants) if tenants is not None else load_tenant_credentials(config)

        # Only close what we created.
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=httpx.Timeout(config.EXTERNAL_API_TIMEOUT))

        self.token_broker = TokenBroker(
            self.tenants, self.http, refresh_buffer_s=config.VALD_TOKEN_REFRESH_BUFFER_S
        )
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=config.VALD_RATE_LIMIT_MAX_REQUESTS,
            window_s=config.VALD_RATE_LIMIT_WINDOW_S,
            safety_margin_s=config.VALD_RATE_LIMIT_SAFETY_MARGIN_S,
        )
        self.client = ValdClient(self.tenants, self.http, self.token_broker, self.rate_limiter)
        self.directory = AthleteDirectory(
            self.client,
            pro_group_names=config.VALD_PRO_GROUP_NAMES,
            profile_page_size=config.VALD_PROFILE_PAGE_SIZE,
        )
        self.orchestrator = FetchOrchestrator(
            self.client,
            lookback_days=config.VALD_TEST_LOOKBACK_DAYS,
            test_page_size=config.VALD_TEST_PAGE_SIZE,
        )

        roles = ", ".join(f"{t.role.label}={t.tenant_id or '<unset>'}" for t in self.tenants)
        logger.info(f"Aggregation session ready ({roles})")

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "AggregationSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
