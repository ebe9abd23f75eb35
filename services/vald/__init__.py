"""
VALD Vendor Integration

Aggregates athletes and ForceDecks test results from one or two VALD
tenants (primary and optional secondary account):

1. TokenBroker - cached OAuth2 client-credentials tokens per tenant
2. ValdClient - authenticated, rate-limited access to the vendor endpoints
3. AthleteDirectory - cross-tenant athlete search and identity merge
4. FetchOrchestrator - test summaries, trials and latest-per-type selection
5. Metric canonicalization - flat, stable metric names per test

Design Principles:
- The secondary tenant is optional; its failures never break a request
- Per-item vendor failures are logged and skipped, never raised
- Canonical metric names are a downstream contract and must stay stable
"""

from .models import (
    Athlete,
    CanonicalMetricSet,
    ProfileReference,
    TenantCredential,
    TenantRole,
    TestSummary,
    Trial,
)
from .token_broker import AuthenticationFailed, TokenBroker
from .client import FetchFailed, FetchOutcome, ValdClient
from .athlete_directory import AthleteDirectory
from .fetch_orchestrator import FetchOrchestrator
from .session import AggregationSession

__all__ = [
    'Athlete',
    'CanonicalMetricSet',
    'ProfileReference',
    'TenantCredential',
    'TenantRole',
    'TestSummary',
    'Trial',
    'AuthenticationFailed',
    'TokenBroker',
    'FetchFailed',
    'FetchOutcome',
    'ValdClient',
    'AthleteDirectory',
    'FetchOrchestrator',
    'AggregationSession',
]
