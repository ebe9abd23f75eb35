"""
Tenant credential loading.

Builds the immutable TenantCredential list from settings. The primary
tenant is always present (credentials may be empty, in which case token
acquisition fails with AuthenticationFailed). The secondary tenant is only
configured when all three of its settings are provided.
"""
from typing import List, Optional

from core.config import Settings, settings as default_settings
from services.vald.models import TenantCredential, TenantRole


def _clean(value: Optional[str]) -> str:
    # Credentials pasted into .env files frequently keep their quotes.
    return (value or "").replace('"', "").strip()


def load_tenant_credentials(config: Optional[Settings] = None) -> List[TenantCredential]:
    """Return [primary] or [primary, secondary] in configuration order."""
    config = config or default_settings

    tenants = [
        TenantCredential(
            tenant_id=_clean(config.TENANT_ID),
            client_id=_clean(config.VALD_API_KEY),
            client_secret=_clean(config.VALD_API_SECRET),
            auth_endpoint=config.AUTH_URL,
            tenant_base_url=config.TENANT_URL,
            profile_base_url=config.PROFILE_URL,
            forcedecks_base_url=config.FORCEDECKS_URL,
            role=TenantRole.PRIMARY,
        )
    ]

    if config.secondary_configured:
        tenants.append(
            TenantCredential(
                tenant_id=_clean(config.TENANT_ID_2),
                client_id=_clean(config.VALD_API_KEY_2),
                client_secret=_clean(config.VALD_API_SECRET_2),
                auth_endpoint=config.AUTH_URL,
                tenant_base_url=config.TENANT_URL,
                profile_base_url=config.PROFILE_URL,
                forcedecks_base_url=config.FORCEDECKS_URL,
                role=TenantRole.SECONDARY,
            )
        )

    return tenants
