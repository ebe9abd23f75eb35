"""
Athlete Aggregation API Router

Thin HTTP surface over the aggregation session:
- Search professional athletes across both VALD tenants
- List ForceDecks tests for merged profile references
- Canonical metrics for one test
- Comparative analysis against population buckets
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import AliasChoices, BaseModel, Field

from core.exceptions import NotFoundError, UpstreamAuthError, ValidationError
from services.comparative.analysis import compare, get_family
from services.comparative.percentile_engine import PopulationBucket
from services.vald.models import ProfileReference, TestSummary
from services.vald.session import AggregationSession
from services.vald.token_broker import AuthenticationFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Athletes"])


def get_session(request: Request) -> AggregationSession:
    """Session stored on the app; created on first use."""
    session = getattr(request.app.state, "vald_session", None)
    if session is None:
        session = AggregationSession()
        request.app.state.vald_session = session
    return session


def parse_profile_reference(value: str) -> ProfileReference:
    """Parse `<tenant_id>:<profile_id>`."""
    tenant_id, sep, profile_id = (value or "").partition(":")
    if not sep or not tenant_id.strip() or not profile_id.strip():
        raise ValidationError(f"Invalid profile reference {value!r}, expected <tenant>:<profile>", field="profile")
    return ProfileReference(tenant_id=tenant_id.strip(), profile_id=profile_id.strip())


class PopulationBucketModel(BaseModel):
    """Population snapshot for one metric"""
    mean: Optional[float] = None
    stddev: Optional[float] = None
    p1: Optional[float] = None
    p5: Optional[float] = None
    p10: Optional[float] = None
    p25: Optional[float] = None
    p50: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None
    p95: Optional[float] = None
    p99: Optional[float] = None
    sample_size: int = Field(default=0, ge=0, validation_alias=AliasChoices("sample_size", "sampleSize"))


class ComparisonRequest(BaseModel):
    """Request body for a comparative analysis"""
    metrics: Dict[str, Optional[float]] = Field(
        ..., description="Canonical metric name -> value for one test"
    )
    population: Dict[str, PopulationBucketModel] = Field(
        default_factory=dict,
        description="Metric key -> population bucket (mean, stddev, p1..p99, sample_size)",
    )
    sample_size: Optional[int] = Field(default=None, ge=0)


@router.get("/athletes/search")
async def search_athletes(
    term: str = Query("", description="Case-insensitive name fragment; empty returns all"),
    session: AggregationSession = Depends(get_session),
):
    """
    Search professional athletes in every configured tenant.

    Athletes with the same normalized name are merged into one entry with
    all of their profile references.
    """
    try:
        athletes = await session.directory.search(term)
    except AuthenticationFailed as e:
        raise UpstreamAuthError(e.tenant_id) from e

    return {
        "athletes": [athlete.to_dict() for athlete in athletes],
        "total": len(athletes),
    }


@router.get("/athletes/tests")
async def list_athlete_tests(
    profile: List[str] = Query(..., description="Profile reference as <tenant>:<profile>, repeatable"),
    test_type: Optional[str] = Query(None, description="Vendor test type, e.g. CMJ"),
    session: AggregationSession = Depends(get_session),
):
    """Test summaries for every given profile reference, in reference order."""
    references = [parse_profile_reference(value) for value in profile]
    try:
        tests = await session.orchestrator.fetch_tests(references, test_type=test_type)
    except AuthenticationFailed as e:
        raise UpstreamAuthError(e.tenant_id) from e

    return {
        "tests": [summary.to_dict() for summary in tests],
        "total": len(tests),
    }


@router.get("/tests/{tenant_id}/{test_id}/metrics")
async def get_test_metrics(
    tenant_id: str,
    test_id: str,
    session: AggregationSession = Depends(get_session),
):
    """Canonical metrics for one test, alias names included."""
    if tenant_id not in {t.tenant_id for t in session.client.tenants}:
        raise NotFoundError("Tenant", tenant_id)

    summary = TestSummary(tenant_id=tenant_id, test_id=test_id, profile_id="")
    try:
        details = await session.orchestrator.get_test_details(summary)
    except AuthenticationFailed as e:
        raise UpstreamAuthError(e.tenant_id) from e

    if details is None:
        raise NotFoundError("Test metrics", test_id)

    trials = details.pop("trials", [])
    metrics = {k: v for k, v in details.items() if k not in summary.to_dict()}
    return {
        "tenant_id": tenant_id,
        "test_id": test_id,
        "metrics": metrics,
        "trial_count": len(trials),
    }


@router.post("/comparisons/{family}")
async def compare_to_population(
    family: str,
    request: ComparisonRequest = Body(...),
):
    """
    Rank one test's metrics against professional population buckets.

    Metrics the test does not have are reported as "N/A".
    """
    metric_family = get_family(family)
    if metric_family is None:
        raise NotFoundError("Metric family", family)

    buckets = {key: PopulationBucket.from_mapping(bucket.model_dump()) for key, bucket in request.population.items()}
    analysis = compare(metric_family, request.metrics, buckets, sample_size=request.sample_size)
    return analysis.to_dict()
