"""
Metric canonicalization for ForceDecks trial results.

Converts the vendor's nested trial/result structure into one flat map keyed
by canonical field name:

    RESULT_NAME_Limb_Unit        e.g. JUMP_HEIGHT_Trial_cm

The same names are used as warehouse column names and by the report
layer, so the naming here must stay stable.

Two tables drive the conversion:
- UNIT_SUBSTITUTIONS: ordered regex rewrites from vendor unit words to
  abbreviations ("Meter Per Second" -> "m_per_s").
- ALIAS_TABLE: ordered (target, candidates) pairs. The vendor has emitted
  the same quantity under several names over time; the first candidate
  present is copied to the target name. Raw names are kept.

Everything in this module is pure: the same trials always produce the same
map, in the same key order.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from services.vald.models import CanonicalMetricSet, Trial, TrialResult

DEFAULT_LIMB = "Trial"

# Order matters: Millimeter/Centimeter before Meter, Millisecond before Second,
# Percent before the "Per" rewrites.
UNIT_SUBSTITUTIONS: Tuple[Tuple[str, str], ...] = (
    (r"Centimeter", "cm"),
    (r"Millimeter", "mm"),
    (r"Meter", "m"),
    (r"Inch", "in"),
    (r"Newton", "N"),
    (r"Watt", "W"),
    (r"Kilo", "kg"),
    (r"Pound", "lb"),
    (r"Millisecond", "ms"),
    (r"Second", "s"),
    (r"Percent", "percent"),
    (r"_Per_", "_per_"),
    (r"\sPer\s", "_per_"),
    (r"\s+", "_"),
)

_COMPILED_UNIT_SUBSTITUTIONS = tuple((re.compile(p), r) for p, r in UNIT_SUBSTITUTIONS)


def _rsi_variants(limb: str, extra: Sequence[str] = ()) -> List[str]:
    return [
        f"FLIGHT_CONTRACTION_TIME_RATIO_{limb}_No_Unit",
        f"FLIGHT_CONTRACTION_TIME_RATIO_{limb}_",
        f"FLIGHT_CONTRACTION_TIME_RATIO_{limb}",
        f"FLIGHT__CONTRACTION_TIME_RATIO_{limb}_",
        f"FLIGHT__CONTRACTION_TIME_RATIO_{limb}",
        f"RSI_{limb}_",
        f"RSI_{limb}",
        *extra,
    ]


ALIAS_TABLE: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("CONCENTRIC_IMPULSE_Trial_Ns", ("CONCENTRIC_IMPULSE_Trial_N_s",)),
    ("RSI_MODIFIED_Trial_RSI_mod", ("RSI_MODIFIED_Trial_RSIModified",)),
    (
        "FLIGHT_CONTRACTION_TIME_RATIO_Trial_",
        tuple(
            _rsi_variants(
                "Trial",
                extra=(
                    "CMJ_RSI_Trial_",
                    "CMJ_RSI_Trial",
                    "SLJ_RSI_Trial_",
                    "SLJ_RSI_Trial",
                    "SLJ_RSI_Left_",
                    "SLJ_RSI_Left",
                    "SLJ_RSI_Right_",
                    "SLJ_RSI_Right",
                ),
            )
        ),
    ),
    (
        "FLIGHT_CONTRACTION_TIME_RATIO_Left_",
        tuple(_rsi_variants("Left", extra=("SLJ_RSI_Left_", "SLJ_RSI_Left"))),
    ),
    (
        "FLIGHT_CONTRACTION_TIME_RATIO_Right_",
        tuple(_rsi_variants("Right", extra=("SLJ_RSI_Right_", "SLJ_RSI_Right"))),
    ),
)


def normalize_unit(unit: Optional[str]) -> str:
    """Rewrite a vendor unit string into its field-name suffix ('' if absent)."""
    if not unit:
        return ""
    normalized = unit
    for pattern, replacement in _COMPILED_UNIT_SUBSTITUTIONS:
        normalized = pattern.sub(replacement, normalized)
    return normalized


def field_name(result_name: str, limb: Optional[str] = None, unit: Optional[str] = None) -> str:
    """Build the canonical field name for one result row."""
    name = f"{result_name}_{limb or DEFAULT_LIMB}"
    suffix = normalize_unit(unit)
    if suffix:
        name = f"{name}_{suffix}"
    return name


def resolve_aliases(
    metrics: Mapping[str, Any],
    alias_table: Iterable[Tuple[str, Sequence[str]]] = ALIAS_TABLE,
) -> Dict[str, Any]:
    """
    Return the alias assignments for `metrics`.

    For each (target, candidates) entry the first candidate with a non-null
    value wins. Entries with no present candidate produce nothing, so an
    existing raw value under the target name is left alone.
    """
    aliases: Dict[str, Any] = {}
    for target, candidates in alias_table:
        for candidate in candidates:
            value = metrics.get(candidate)
            if value is not None:
                aliases[target] = value
                break
    return aliases


def parse_trials(payload: Any) -> List[Trial]:
    """
    Convert the vendor trials payload into Trial objects.

    Each result row carries `definition.result` (the metric name),
    `definition.unit`, `limb` and `value`. Rows, definitions or trials that
    are not objects are ignored, as are trials whose results are not a list.
    """
    if not isinstance(payload, list):
        return []

    trials: List[Trial] = []
    for raw_trial in payload:
        if not isinstance(raw_trial, dict):
            continue
        raw_results = raw_trial.get("results") or []
        if not isinstance(raw_results, list):
            continue
        results: List[TrialResult] = []
        for raw_result in raw_results:
            if not isinstance(raw_result, dict):
                continue
            definition = raw_result.get("definition")
            if not isinstance(definition, dict):
                continue
            results.append(
                TrialResult(
                    limb=raw_result.get("limb"),
                    result_name=definition.get("result"),
                    unit=definition.get("unit"),
                    value=raw_result.get("value"),
                )
            )
        trials.append(Trial(limb=raw_trial.get("limb"), results=results, raw=raw_trial))
    return trials


def canonicalize(trials: Optional[Sequence[Trial]]) -> CanonicalMetricSet:
    """
    Flatten trials into a CanonicalMetricSet.

    Later rows overwrite earlier rows with the same field name (last trial
    wins). Alias targets are written after all raw names.
    """
    if not trials:
        return CanonicalMetricSet(metrics={}, trials=())

    metrics: Dict[str, Any] = {}
    for trial in trials:
        for result in trial.results:
            if not result.result_name:
                continue
            metrics[field_name(result.result_name, result.limb, result.unit)] = result.value

    metrics.update(resolve_aliases(metrics))
    return CanonicalMetricSet(metrics=metrics, trials=tuple(trials))
