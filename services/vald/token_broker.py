"""
VALD OAuth2 token broker.

Acquires client-credentials bearer tokens per tenant and caches them until
shortly before expiry. Refresh is lazy: it happens on the first call that
needs a valid token, never in the background.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, Optional

import httpx

from core.config import settings
from services.vald.models import AccessToken, TenantCredential

logger = logging.getLogger(__name__)


class AuthenticationFailed(RuntimeError):
    """
    Raised when a tenant's token cannot be obtained.

    Fatal for the primary tenant; callers treat a failed secondary tenant
    as unavailable and continue with the primary only.
    """

    def __init__(self, tenant_id: str, reason: str = ""):
        message = f"Failed to authenticate with VALD API (tenant {tenant_id})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.tenant_id = tenant_id
        self.reason = reason


class TokenBroker:
    """One cached AccessToken per tenant, refreshed on demand."""

    def __init__(
        self,
        tenants: Iterable[TenantCredential],
        http: httpx.AsyncClient,
        refresh_buffer_s: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._tenants: Dict[str, TenantCredential] = {t.tenant_id: t for t in tenants}
        self._http = http
        self.refresh_buffer_s = (
            refresh_buffer_s if refresh_buffer_s is not None else settings.VALD_TOKEN_REFRESH_BUFFER_S
        )
        self._clock = clock
        self._tokens: Dict[str, AccessToken] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    async def get_token(self, tenant_id: str) -> str:
        """Return a valid bearer token for `tenant_id`, refreshing if needed."""
        async with self._lock_for(tenant_id):
            cached = self._tokens.get(tenant_id)
            if cached is not None and cached.is_valid(self._clock(), self.refresh_buffer_s):
                return cached.token

            token = await self._request_token(tenant_id)
            self._tokens[tenant_id] = token
            return token.token

    def invalidate(self, tenant_id: str) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._tokens.pop(tenant_id, None)

    async def _request_token(self, tenant_id: str) -> AccessToken:
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            raise AuthenticationFailed(tenant_id, "tenant is not configured")
        if not tenant.client_id or not tenant.client_secret:
            raise AuthenticationFailed(tenant_id, "API key or secret is not set")

        logger.info(f"Requesting new VALD token for {tenant.role.label} tenant {tenant_id}")
        try:
            response = await self._http.post(
                tenant.auth_endpoint,
                data={
                    "grant_type": "client_credentials",
                    "client_id": tenant.client_id,
                    "client_secret": tenant.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            response.raise_for_status()
            payload = response.json()
            access_token = payload["access_token"]
            expires_in = float(payload["expires_in"])
        except httpx.HTTPError as e:
            logger.error(f"VALD {tenant.role.label} authentication failed: {e}")
            raise AuthenticationFailed(tenant_id, str(e)) from e
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"VALD {tenant.role.label} authentication returned a malformed body: {e}")
            raise AuthenticationFailed(tenant_id, "malformed token response") from e

        if not access_token:
            raise AuthenticationFailed(tenant_id, "empty access_token")

        expires_at = self._clock() + expires_in
        logger.info(
            f"VALD {tenant.role.label} authentication successful, expires in {expires_in / 3600:.2f}h"
        )
        return AccessToken(tenant_id=tenant_id, token=access_token, expires_at=expires_at)
