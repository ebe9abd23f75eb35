"""
Comparative Analysis Service

Compares one athlete's canonical metrics against the professional
population for a test family (CMJ, SJ, IMTP, PPU).

Percentiles are always computed on the raw (canonical unit) value; only
the display value is converted (cm -> in for jump heights and depths).
A metric the athlete has no value for is reported as "N/A" with no
percentile.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
import logging

from services.comparative.percentile_engine import (
    PERFORMANCE_BANDS,
    QUANTILE_MARKERS,
    QUARTILE_BANDS,
    PopulationBucket,
    rank,
    rating,
)

logger = logging.getLogger(__name__)

CM_PER_INCH = 2.54


def cm_to_inches(cm: Optional[float]) -> Optional[float]:
    if cm is None:
        return None
    return cm / CM_PER_INCH


@dataclass(frozen=True)
class MetricSpec:
    """One compared metric: report key, canonical column, direction, display."""
    key: str
    column: str
    lower_is_better: bool = False
    display_in_inches: bool = False

    @property
    def display_unit(self) -> str:
        if self.display_in_inches:
            return "in"
        for suffix in ("_cm", "_in"):
            if self.column.endswith(suffix):
                return suffix[1:]
        return ""


@dataclass(frozen=True)
class MetricFamily:
    name: str
    metrics: Tuple[MetricSpec, ...]
    bands: Tuple[Tuple[float, str], ...] = PERFORMANCE_BANDS


CMJ = MetricFamily(
    name="CMJ",
    bands=QUARTILE_BANDS,
    metrics=(
        MetricSpec("jumpHeight", "JUMP_HEIGHT_Trial_cm", display_in_inches=True),
        MetricSpec("eccentricBrakingRFD", "ECCENTRIC_BRAKING_RFD_Trial_N_per_s"),
        MetricSpec("forceAtZeroVelocity", "FORCE_AT_ZERO_VELOCITY_Trial_N"),
        MetricSpec("eccentricPeakForce", "PEAK_ECCENTRIC_FORCE_Trial_N"),
        MetricSpec("concentricImpulse", "CONCENTRIC_IMPULSE_Trial_Ns"),
        MetricSpec("eccentricPeakVelocity", "ECCENTRIC_PEAK_VELOCITY_Trial_m_per_s", lower_is_better=True),
        MetricSpec("concentricPeakVelocity", "PEAK_TAKEOFF_VELOCITY_Trial_m_per_s"),
        MetricSpec("eccentricPeakPower", "ECCENTRIC_PEAK_POWER_Trial_W"),
        MetricSpec("eccentricPeakPowerBM", "BODYMASS_RELATIVE_ECCENTRIC_PEAK_POWER_Trial_W_per_kg"),
        MetricSpec("peakPower", "PEAK_TAKEOFF_POWER_Trial_W"),
        MetricSpec("peakPowerBM", "BODYMASS_RELATIVE_TAKEOFF_POWER_Trial_W_per_kg"),
        MetricSpec("rsiMod", "RSI_MODIFIED_Trial_RSI_mod"),
        MetricSpec(
            "countermovementDepth", "COUNTERMOVEMENT_DEPTH_Trial_cm",
            lower_is_better=True, display_in_inches=True,
        ),
    ),
)

SJ = MetricFamily(
    name="SJ",
    metrics=(
        MetricSpec("jumpHeight", "JUMP_HEIGHT_Trial_cm", display_in_inches=True),
        MetricSpec("forceAtPeakPower", "FORCE_AT_PEAK_POWER_Trial_N"),
        MetricSpec("concentricPeakVelocity", "VELOCITY_AT_PEAK_POWER_Trial_m_per_s"),
        MetricSpec("peakPower", "PEAK_TAKEOFF_POWER_Trial_W"),
        MetricSpec("peakPowerBM", "BODYMASS_RELATIVE_TAKEOFF_POWER_Trial_W_per_kg"),
    ),
)

IMTP = MetricFamily(
    name="IMTP",
    metrics=(
        MetricSpec("peakVerticalForce", "PEAK_VERTICAL_FORCE_Trial_N"),
        MetricSpec("peakForceBM", "ISO_BM_REL_FORCE_PEAK_Trial_N_per_kg"),
        MetricSpec("forceAt100ms", "FORCE_AT_100MS_Trial_N"),
        MetricSpec("timeToPeakForce", "START_TO_PEAK_FORCE_Trial_s"),
    ),
)

PPU = MetricFamily(
    name="PPU",
    metrics=(
        MetricSpec("pushupHeight", "PUSHUP_HEIGHT_INCHES_Trial_in"),
        MetricSpec("eccentricPeakForce", "PEAK_ECCENTRIC_FORCE_Trial_N"),
        MetricSpec("concentricPeakForce", "PEAK_CONCENTRIC_FORCE_Trial_N"),
        MetricSpec("concentricRFD_L", "CONCENTRIC_RFD_Left_N_per_s"),
        MetricSpec("concentricRFD_R", "CONCENTRIC_RFD_Right_N_per_s"),
        MetricSpec("eccentricBrakingRFD", "ECCENTRIC_BRAKING_RFD_Trial_N_per_s"),
    ),
)

FAMILIES: Dict[str, MetricFamily] = {f.name: f for f in (CMJ, SJ, IMTP, PPU)}


@dataclass
class ComparativeResult:
    """Per-metric comparison consumed by report templates."""
    key: str
    column: str
    raw_value: Optional[float]
    display_value: Optional[float]
    unit: str
    percentile: Optional[int]
    rating: str
    population_mean: Optional[float] = None
    # p1..p99 in the display unit
    population_markers: Dict[str, Optional[float]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "column": self.column,
            "raw_value": self.raw_value,
            "value": self.display_value,
            "unit": self.unit,
            "percentile": self.percentile,
            "rating": self.rating,
            "population_mean": self.population_mean,
            "population_markers": dict(self.population_markers),
        }


@dataclass
class ComparativeAnalysis:
    family: str
    sample_size: int = 0
    metrics: Dict[str, ComparativeResult] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "sample_size": self.sample_size,
            "metrics": {key: result.to_dict() for key, result in self.metrics.items()},
        }


def get_family(name: str) -> Optional[MetricFamily]:
    return FAMILIES.get((name or "").upper())


def compare_metric(
    spec: MetricSpec,
    raw_value: Optional[float],
    bucket: Optional[PopulationBucket],
    bands: Tuple[Tuple[float, str], ...] = PERFORMANCE_BANDS,
) -> ComparativeResult:
    percentile = rank(raw_value, bucket, lower_is_better=spec.lower_is_better)
    rounded = int(round(percentile)) if percentile is not None else None

    convert = cm_to_inches if spec.display_in_inches else (lambda v: v)
    mean = bucket.mean if bucket is not None else None
    markers = {}
    if bucket is not None:
        markers = {name: convert(getattr(bucket, name)) for _, name in QUANTILE_MARKERS}
    return ComparativeResult(
        key=spec.key,
        column=spec.column,
        raw_value=raw_value,
        display_value=convert(raw_value),
        unit=spec.display_unit,
        percentile=rounded,
        rating=rating(rounded, bands),
        population_mean=convert(mean),
        population_markers=markers,
    )


def compare(
    family: MetricFamily,
    metrics: Mapping[str, Any],
    buckets: Mapping[str, PopulationBucket],
    sample_size: Optional[int] = None,
) -> ComparativeAnalysis:
    """
    Compare every metric of `family`.

    `metrics` is a canonical metric map (CanonicalMetricSet or the merged
    test details dict) keyed by column name; `buckets` is keyed by metric
    key (e.g. "jumpHeight").
    """
    if sample_size is None:
        sample_size = max((b.sample_size for b in buckets.values()), default=0)

    analysis = ComparativeAnalysis(family=family.name, sample_size=sample_size)
    for spec in family.metrics:
        raw = metrics.get(spec.column)
        analysis.metrics[spec.key] = compare_metric(spec, raw, buckets.get(spec.key), family.bands)

    ranked = sum(1 for r in analysis.metrics.values() if r.percentile is not None)
    logger.info(f"{family.name} comparative analysis: {ranked}/{len(family.metrics)} metrics ranked")
    return analysis


def calculate_asymmetry(left: Optional[float], right: Optional[float]) -> Optional[Dict[str, Any]]:
    """
    Left/right asymmetry as a percentage of the mean of both sides.

    Returns None when either side is missing or zero, or when the sides
    average to zero.
    """
    if not left or not right:
        return None

    average = (left + right) / 2
    if average == 0:
        return None
    asymmetry = abs(left - right) / average * 100

    if asymmetry < 5:
        color = "green"
    elif asymmetry < 10:
        color = "yellow"
    else:
        color = "red"

    return {
        "percentage": round(asymmetry, 1),
        "dominant_side": "L" if left > right else "R",
        "color": color,
    }
