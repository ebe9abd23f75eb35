"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the aggregation engine.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # VALD Primary tenant credentials
    VALD_API_KEY: Optional[str] = Field(default=None)
    VALD_API_SECRET: Optional[str] = Field(default=None)
    TENANT_ID: Optional[str] = Field(default=None)

    # VALD Secondary tenant credentials (all three must be set to enable)
    VALD_API_KEY_2: Optional[str] = Field(default=None)
    VALD_API_SECRET_2: Optional[str] = Field(default=None)
    TENANT_ID_2: Optional[str] = Field(default=None)

    # VALD endpoints (shared by both tenants)
    AUTH_URL: str = Field(default="https://security.valdperformance.com/connect/token")
    PROFILE_URL: str = Field(default="https://prd-use-api-externalprofile.valdperformance.com")
    TENANT_URL: str = Field(default="https://prd-use-api-externaltenants.valdperformance.com")
    FORCEDECKS_URL: str = Field(default="https://prd-use-api-extforcedecks.valdperformance.com")

    # Token lifecycle
    # Tokens are refreshed this many seconds before the vendor-reported expiry.
    VALD_TOKEN_REFRESH_BUFFER_S: float = Field(default=300.0, ge=0)

    # Outbound rate limiting (per tenant, trailing sliding window)
    VALD_RATE_LIMIT_MAX_REQUESTS: int = Field(default=20, ge=1)
    VALD_RATE_LIMIT_WINDOW_S: float = Field(default=5.0, gt=0)
    VALD_RATE_LIMIT_SAFETY_MARGIN_S: float = Field(default=0.1, ge=0)

    # Directory / fetch paging
    VALD_PROFILE_PAGE_SIZE: int = Field(default=500, ge=1)
    VALD_TEST_PAGE_SIZE: int = Field(default=100, ge=1)
    VALD_TEST_LOOKBACK_DAYS: int = Field(default=730, ge=1)  # 2 years

    # Group names treated as professional (case-insensitive substring match)
    VALD_PRO_GROUP_NAMES: List[str] = Field(
        default=[
            "MiLB/MLB",
            "Pro",
            "MLB",
            "MiLB",
            "Professional",
            "Major",
            "MLB/ MiLB",
            "Pro Baseball",
        ]
    )

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    @property
    def secondary_configured(self) -> bool:
        """True when every secondary credential is present."""
        return bool(self.VALD_API_KEY_2 and self.VALD_API_SECRET_2 and self.TENANT_ID_2)


# Global settings instance
settings = Settings()
