"""
Athlete Directory

Searches professional-group profiles in every configured tenant and merges
duplicate identities into one Athlete per normalized full name.

ARCHITECTURE:
- Tenants are queried concurrently, merged in configuration order
  (primary first) so results are deterministic
- Identity is exact string equality on the normalized name; names that
  differ by a middle initial, accent or punctuation stay separate
- A failing group-list or profile-list call skips that step only
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from core.config import settings
from services.vald.client import ValdClient
from services.vald.models import Athlete, GroupMembership, ProfileReference, TenantCredential

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace to single spaces."""
    return _WHITESPACE.sub(" ", (name or "").strip().lower())


def is_professional_group(name: Optional[str], pro_group_names: Sequence[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(pro.lower() in lowered for pro in pro_group_names)


@dataclass
class _Candidate:
    athlete: Athlete
    reference: ProfileReference
    group: GroupMembership
    source: str


def _candidate_from_profile(
    profile: Dict,
    tenant: TenantCredential,
    group: GroupMembership,
) -> Optional[_Candidate]:
    profile_id = profile.get("profileId") or profile.get("id")
    if not profile_id:
        return None

    first_name = (profile.get("givenName") or "").strip()
    last_name = (profile.get("familyName") or "").strip()
    full_name = f"{first_name} {last_name}".strip() or "Unknown"

    athlete = Athlete(
        canonical_key=normalize_name(full_name),
        display_name=full_name,
        first_name=first_name,
        last_name=last_name,
    )
    return _Candidate(
        athlete=athlete,
        reference=ProfileReference(tenant_id=tenant.tenant_id, profile_id=str(profile_id)),
        group=group,
        source=tenant.role.label,
    )


def merge_candidates(candidates: Iterable[_Candidate]) -> Dict[str, Athlete]:
    """Merge candidates by canonical key, preserving first-seen order."""
    merged: Dict[str, Athlete] = {}
    for candidate in candidates:
        key = candidate.athlete.canonical_key
        existing = merged.get(key)
        if existing is None:
            existing = candidate.athlete
            merged[key] = existing
            logger.debug(f"Added {existing.display_name!r} ({candidate.reference.profile_id})")
        else:
            logger.debug(
                f"Merged {candidate.athlete.display_name!r} ({candidate.reference.profile_id}) "
                f"into {existing.display_name!r}"
            )
        existing.add_profile_reference(candidate.reference)
        existing.add_group(candidate.group)
        existing.add_source(candidate.source)
    return merged


def filter_athletes(athletes: Iterable[Athlete], term: Optional[str]) -> List[Athlete]:
    """Athletes whose canonical key, first or last name contains `term`."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(athletes)
    return [
        a for a in athletes
        if needle in a.canonical_key
        or needle in a.first_name.lower()
        or needle in a.last_name.lower()
    ]


class AthleteDirectory:
    """Cross-tenant athlete search."""

    def __init__(
        self,
        client: ValdClient,
        pro_group_names: Optional[Sequence[str]] = None,
        profile_page_size: Optional[int] = None,
    ):
        self.client = client
        self.pro_group_names = list(pro_group_names or settings.VALD_PRO_GROUP_NAMES)
        self.profile_page_size = profile_page_size or settings.VALD_PROFILE_PAGE_SIZE

    async def _groups_for(self, tenant: TenantCredential) -> List[GroupMembership]:
        outcome = await self.client.attempt(
            self.client.list_groups(tenant.tenant_id),
            tenant.tenant_id,
            f"{tenant.role.label} list groups",
        )
        if not outcome.ok:
            return []

        groups = []
        for raw in outcome.data or []:
            if not isinstance(raw, dict) or raw.get("id") is None:
                continue
            if is_professional_group(raw.get("name"), self.pro_group_names):
                groups.append(GroupMembership(id=str(raw["id"]), name=raw.get("name") or ""))

        logger.info(
            f"{tenant.role.label}: filtered to {len(groups)} professional groups "
            f"(from {len(outcome.data or [])} total)"
        )
        return groups

    async def _candidates_for_group(
        self,
        tenant: TenantCredential,
        group: GroupMembership,
    ) -> List[_Candidate]:
        outcome = await self.client.attempt(
            self.client.list_profiles(tenant.tenant_id, group.id, self.profile_page_size),
            tenant.tenant_id,
            f"{tenant.role.label} list profiles for group {group.name}",
        )
        if not outcome.ok:
            return []

        candidates = []
        for profile in outcome.data or []:
            if not isinstance(profile, dict):
                continue
            candidate = _candidate_from_profile(profile, tenant, group)
            if candidate is not None:
                candidates.append(candidate)
        logger.info(f"{tenant.role.label} [{group.name}]: found {len(candidates)} athletes")
        return candidates

    async def _candidates_for_tenant(self, tenant: TenantCredential) -> List[_Candidate]:
        groups = await self._groups_for(tenant)
        per_group = await asyncio.gather(*(self._candidates_for_group(tenant, g) for g in groups))
        return [candidate for batch in per_group for candidate in batch]

    async def search(self, term: Optional[str] = "") -> List[Athlete]:
        """
        Merged professional athletes matching `term` (all of them if empty).

        Raises AuthenticationFailed when the primary tenant cannot
        authenticate; a failing secondary tenant is skipped.
        """
        tenants = self.client.tenants
        per_tenant = await asyncio.gather(*(self._candidates_for_tenant(t) for t in tenants))
        merged = merge_candidates(c for batch in per_tenant for c in batch)

        athletes = filter_athletes(merged.values(), term)

        multi = [a for a in athletes if len(a.profile_references) > 1]
        logger.info(
            f"Found {len(athletes)} pro athletes matching {term!r} across {len(tenants)} tenant(s); "
            f"{len(multi)} backed by multiple profiles"
        )
        return athletes
