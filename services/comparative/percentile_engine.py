"""
Percentile Engine

Ranks an individual value against a reference population described by
quantile markers (p1 ... p99).

Ranking uses piecewise-linear interpolation between the markers and caps
outliers at the p1/p99 markers, so the result is always in [1, 99].
Markers are computed externally (warehouse aggregation) or with
`compute_bucket` from raw samples.
"""

import math
import statistics
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

# (percentile, attribute) in ascending order
QUANTILE_MARKERS: Tuple[Tuple[int, str], ...] = (
    (1, "p1"),
    (5, "p5"),
    (10, "p10"),
    (25, "p25"),
    (50, "p50"),
    (75, "p75"),
    (90, "p90"),
    (95, "p95"),
    (99, "p99"),
)

MIN_PERCENTILE = 1.0
MAX_PERCENTILE = 99.0

# Rating bands: (minimum percentile, label), checked top-down.
PERFORMANCE_BANDS: Tuple[Tuple[float, str], ...] = (
    (90, "Elite"),
    (75, "Above Average"),
    (50, "Average"),
    (25, "Below Average"),
    (0, "Needs Improvement"),
)

QUARTILE_BANDS: Tuple[Tuple[float, str], ...] = (
    (90, "Elite"),
    (75, "Above Average"),
    (25, "Average"),
    (0, "Below Average"),
)

NOT_AVAILABLE = "N/A"


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class PopulationBucket:
    """Read-only population snapshot for one metric."""
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
    sample_size: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PopulationBucket":
        """Build from a plain dict such as {"p1": 30, "p50": 45, ...}."""
        values = {name: _number(data.get(name)) for _, name in QUANTILE_MARKERS}
        sample_size = _number(data.get("sample_size")) or _number(data.get("sampleSize")) or 0
        return cls(
            mean=_number(data.get("mean")),
            stddev=_number(data.get("stddev")),
            sample_size=max(int(sample_size), 0),
            **values,
        )

    @classmethod
    def from_stats_row(cls, row: Mapping[str, Any], key: str) -> "PopulationBucket":
        """
        Build from a warehouse aggregate row keyed `{key}_mean`, `{key}_p50`, ...

        The row's `total_tests` column is used as the sample size.
        """
        data = {suffix: row.get(f"{key}_{suffix}") for suffix in ("mean", "stddev")}
        data.update({name: row.get(f"{key}_{name}") for _, name in QUANTILE_MARKERS})
        data["sample_size"] = row.get("total_tests") or 0
        return cls.from_mapping(data)

    def anchors(self) -> List[Tuple[float, float]]:
        """
        Available (marker value, percentile) pairs in ascending order.

        Missing markers are skipped, as are markers that would make the
        sequence decrease (bad aggregate data).
        """
        anchors: List[Tuple[float, float]] = []
        for percentile, name in QUANTILE_MARKERS:
            marker = getattr(self, name)
            if marker is None:
                continue
            if anchors and marker < anchors[-1][0]:
                continue
            anchors.append((marker, float(percentile)))
        return anchors

    @property
    def has_variation(self) -> bool:
        return self.p1 is not None and self.p99 is not None and self.p1 < self.p99


def rank(value: Any, bucket: Optional[PopulationBucket], lower_is_better: bool = False) -> Optional[float]:
    """
    Percentile of `value` within `bucket`, in [1, 99], or None.

    None when the value is missing or the bucket has no p1/p99 spread.
    Values at or beyond p1/p99 are capped. With `lower_is_better` the
    complement is returned, so smaller raw values rank higher.
    """
    number = _number(value)
    if number is None or bucket is None or not bucket.has_variation:
        return None

    if number <= bucket.p1:
        percentile = MIN_PERCENTILE
    elif number >= bucket.p99:
        percentile = MAX_PERCENTILE
    else:
        percentile = _interpolate(number, bucket.anchors())

    if lower_is_better:
        percentile = 100.0 - percentile
    return min(MAX_PERCENTILE, max(MIN_PERCENTILE, percentile))


def _interpolate(value: float, anchors: Sequence[Tuple[float, float]]) -> float:
    for (low_value, low_pct), (high_value, high_pct) in zip(anchors, anchors[1:]):
        if value <= high_value:
            if high_value == low_value:
                return high_pct
            return low_pct + (high_pct - low_pct) * (value - low_value) / (high_value - low_value)
    return MAX_PERCENTILE


def rating(percentile: Optional[float], bands: Sequence[Tuple[float, str]] = PERFORMANCE_BANDS) -> str:
    """Categorical label for a percentile ("N/A" when there is none)."""
    if percentile is None:
        return NOT_AVAILABLE
    for minimum, label in bands:
        if percentile >= minimum:
            return label
    return bands[-1][1]


def compute_bucket(values: Iterable[Any]) -> Optional[PopulationBucket]:
    """Population bucket from raw samples; None when no usable sample exists."""
    sample = sorted(n for n in (_number(v) for v in values) if n is not None)
    if not sample:
        return None
    if len(sample) == 1:
        only = sample[0]
        return PopulationBucket(
            mean=only, stddev=0.0, sample_size=1,
            **{name: only for _, name in QUANTILE_MARKERS},
        )

    cuts = statistics.quantiles(sample, n=100, method="inclusive")
    return PopulationBucket(
        mean=statistics.fmean(sample),
        stddev=statistics.stdev(sample),
        sample_size=len(sample),
        **{name: cuts[percentile - 1] for percentile, name in QUANTILE_MARKERS},
    )
