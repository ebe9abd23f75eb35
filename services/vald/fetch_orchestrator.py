"""
ForceDecks Fetch Orchestrator

Walks profile references -> test summaries -> per-trial results under the
shared rate limiter, across both tenants.

Failure policy:
- Per-profile test-list failures are logged and contribute no summaries
- Per-test trial failures return None ("no metrics available")
- Only a primary-tenant authentication failure propagates to the caller
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from core.config import settings
from services.comparative.analysis import calculate_asymmetry
from services.vald.client import ValdClient
from services.vald.metric_canonicalizer import canonicalize, parse_trials
from services.vald.models import ProfileReference, TestSummary, Trial

logger = logging.getLogger(__name__)


# Report slot for each vendor test type name (the vendor uses several).
TEST_TYPE_SLOTS: Dict[str, str] = {
    "CMJ": "cmj",
    "CMJ (Arms)": "cmj",
    "Countermovement Jump": "cmj",
    "SJ": "squat_jump",
    "Squat Jump": "squat_jump",
    "IMTP": "imtp",
    "Isometric Mid-Thigh Pull": "imtp",
    "Single Leg CMJ - Left": "single_leg_cmj_left",
    "SL CMJ - Left": "single_leg_cmj_left",
    "Single Leg CMJ - Right": "single_leg_cmj_right",
    "SL CMJ - Right": "single_leg_cmj_right",
    "Drop Jump": "drop_jump",
    "DJ": "drop_jump",
    "Hop Test": "hop_test",
    "Single Leg Hop": "hop_test",
    "Plyometric Push-Up": "plyo_push_up",
    "PPU": "plyo_push_up",
}

# Single leg jumps do not encode the side in the test type; the first
# trial's limb decides it.
SINGLE_LEG_JUMP_TYPES = frozenset({"SLJ", "Single Leg Jump"})

REPORT_SLOTS = (
    "cmj",
    "squat_jump",
    "imtp",
    "single_leg_cmj_left",
    "single_leg_cmj_right",
    "drop_jump",
    "hop_test",
    "plyo_push_up",
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class AthleteTestData:
    """Latest detailed test per report slot plus derived asymmetries."""
    tests: Dict[str, Optional[Dict[str, Any]]] = field(
        default_factory=lambda: {slot: None for slot in REPORT_SLOTS}
    )
    asymmetries: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    summaries: List[TestSummary] = field(default_factory=list)


def _recorded(summary: TestSummary) -> datetime:
    return summary.recorded_at or _EPOCH


def _first_metric(details: Optional[Dict[str, Any]], names: Sequence[str]) -> Optional[float]:
    if not details:
        return None
    for name in names:
        value = details.get(name)
        if value is not None:
            return value
    return None


class FetchOrchestrator:
    """Fetches test summaries and trial details for merged athletes."""

    def __init__(
        self,
        client: ValdClient,
        lookback_days: Optional[int] = None,
        test_page_size: Optional[int] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.client = client
        self.lookback_days = lookback_days or settings.VALD_TEST_LOOKBACK_DAYS
        self.test_page_size = test_page_size or settings.VALD_TEST_PAGE_SIZE
        self._now = now

    def _modified_from(self) -> datetime:
        return self._now() - timedelta(days=self.lookback_days)

    async def _fetch_for_reference(
        self,
        reference: ProfileReference,
        test_type: Optional[str],
        modified_from: datetime,
    ) -> List[TestSummary]:
        outcome = await self.client.attempt(
            self.client.list_tests(
                reference.tenant_id,
                modified_from,
                profile_id=reference.profile_id,
                test_type=test_type,
                limit=self.test_page_size,
            ),
            reference.tenant_id,
            f"list tests for profile {reference.profile_id}",
        )
        if not outcome.ok:
            return []

        summaries: List[TestSummary] = outcome.data or []
        if test_type:
            # The vendor sometimes returns mixed test types for a filtered query.
            summaries = [s for s in summaries if s.test_type == test_type]
        logger.info(
            f"Found {len(summaries)} tests{f' ({test_type})' if test_type else ''} "
            f"for profile {reference.profile_id} in tenant {reference.tenant_id}"
        )
        return summaries

    async def fetch_tests(
        self,
        profile_references: Iterable[ProfileReference],
        test_type: Optional[str] = None,
    ) -> List[TestSummary]:
        """Test summaries for every reference, concatenated in reference order."""
        references = list(profile_references)
        modified_from = self._modified_from()
        batches = await asyncio.gather(
            *(self._fetch_for_reference(ref, test_type, modified_from) for ref in references)
        )
        tests = [summary for batch in batches for summary in batch]
        logger.info(f"Total: found {len(tests)} tests across {len(references)} profile reference(s)")
        return tests

    async def fetch_trials(self, summary: TestSummary) -> Optional[List[Trial]]:
        """Trials for one test, or None when they could not be fetched."""
        outcome = await self.client.attempt(
            self.client.get_trials(summary.tenant_id, summary.test_id),
            summary.tenant_id,
            f"get trials for test {summary.test_id}",
        )
        if not outcome.ok:
            return None
        return parse_trials(outcome.data)

    async def get_test_details(self, summary: TestSummary) -> Optional[Dict[str, Any]]:
        """
        Summary fields merged with the test's canonical metrics.

        The original trials are kept under `trials` for traceability.
        """
        trials = await self.fetch_trials(summary)
        if trials is None:
            return None

        metric_set = canonicalize(trials)
        logger.info(f"Extracted {len(metric_set)} metrics from test {summary.test_id}")

        details: Dict[str, Any] = summary.to_dict()
        details.update(metric_set.metrics)
        details["trials"] = [trial.raw for trial in metric_set.trials]
        return details

    async def _single_leg_slot(self, summary: TestSummary) -> Optional[str]:
        trials = await self.fetch_trials(summary)
        if not trials:
            return None
        first = trials[0]
        limb = first.limb or (first.results[0].limb if first.results else None)
        if limb == "Left":
            return "single_leg_cmj_left"
        if limb == "Right":
            return "single_leg_cmj_right"
        return None

    async def select_latest_tests(self, summaries: Iterable[TestSummary]) -> Dict[str, TestSummary]:
        """Latest summary per report slot. Ties keep the first seen."""
        latest: Dict[str, TestSummary] = {}

        def keep(slot: str, summary: TestSummary) -> None:
            current = latest.get(slot)
            if current is None or _recorded(current) < _recorded(summary):
                latest[slot] = summary

        single_leg: List[TestSummary] = []
        for summary in summaries:
            if summary.test_type in SINGLE_LEG_JUMP_TYPES:
                single_leg.append(summary)
                continue
            slot = TEST_TYPE_SLOTS.get(summary.test_type or "")
            if slot:
                keep(slot, summary)

        if single_leg:
            slots = await asyncio.gather(*(self._single_leg_slot(s) for s in single_leg))
            for summary, slot in zip(single_leg, slots):
                if slot:
                    keep(slot, summary)

        return latest

    async def get_athlete_test_data(
        self,
        profile_references: Iterable[ProfileReference],
    ) -> AthleteTestData:
        """Latest detailed test of each type for one athlete, with asymmetries."""
        summaries = await self.fetch_tests(profile_references)
        latest = await self.select_latest_tests(summaries)

        data = AthleteTestData(summaries=summaries)
        slots = list(latest)
        details = await asyncio.gather(*(self.get_test_details(latest[slot]) for slot in slots))
        for slot, detail in zip(slots, details):
            data.tests[slot] = detail

        left = _first_metric(data.tests["single_leg_cmj_left"], ("JUMP_HEIGHT_Trial_cm", "JUMP_HEIGHT_Left_cm"))
        right = _first_metric(data.tests["single_leg_cmj_right"], ("JUMP_HEIGHT_Trial_cm", "JUMP_HEIGHT_Right_cm"))
        asymmetry = calculate_asymmetry(left, right)
        if asymmetry is not None:
            data.asymmetries["single_leg_jump_height"] = asymmetry

        return data
