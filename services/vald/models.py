"""
Data models for the VALD aggregation engine.

These models carry vendor data through the pipeline in a vendor-agnostic
shape:

- Tenant credentials and cached access tokens
- Athlete identities merged across tenants
- Test summaries and per-trial result rows
- Canonical metric sets built from those rows

Design Principles:
- Identity types (ProfileReference, GroupMembership) are frozen and hashable
- Raw vendor payloads are preserved in `raw` for traceability
- All models are dataclasses for easy serialization
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class TenantRole(str, Enum):
    """Which credential set a tenant was configured from."""
    PRIMARY = "primary"
    SECONDARY = "secondary"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class TenantCredential:
    """One vendor account. Immutable, loaded once at startup."""
    tenant_id: str
    client_id: str
    client_secret: str
    auth_endpoint: str
    tenant_base_url: str
    profile_base_url: str
    forcedecks_base_url: str
    role: TenantRole = TenantRole.PRIMARY

    @property
    def is_primary(self) -> bool:
        return self.role is TenantRole.PRIMARY


@dataclass
class AccessToken:
    """Bearer token for one tenant. `expires_at` is epoch seconds."""
    tenant_id: str
    token: str
    expires_at: float

    def is_valid(self, now: float, refresh_buffer_s: float) -> bool:
        return now < self.expires_at - refresh_buffer_s


@dataclass(frozen=True)
class ProfileReference:
    """Identifies one vendor-side athlete record."""
    tenant_id: str
    profile_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"tenant_id": self.tenant_id, "profile_id": self.profile_id}


@dataclass(frozen=True)
class GroupMembership:
    id: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass
class Athlete:
    """
    One real-world athlete, possibly backed by profiles in several tenants.

    `profile_references` and `group_memberships` keep first-seen order and
    never contain duplicates (by tenant+profile id and by group id).
    """
    canonical_key: str
    display_name: str
    first_name: str = ""
    last_name: str = ""
    profile_references: List[ProfileReference] = field(default_factory=list)
    group_memberships: List[GroupMembership] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def add_profile_reference(self, reference: ProfileReference) -> bool:
        if reference in self.profile_references:
            return False
        self.profile_references.append(reference)
        return True

    def add_group(self, group: GroupMembership) -> bool:
        if any(g.id == group.id for g in self.group_memberships):
            return False
        self.group_memberships.append(group)
        return True

    def add_source(self, source: str) -> None:
        if source not in self.sources:
            self.sources.append(source)

    @property
    def profile_ids(self) -> List[str]:
        return [ref.profile_id for ref in self.profile_references]

    @property
    def source(self) -> str:
        """'Primary', 'Secondary', or 'Both' when backed by more than one tenant."""
        if len(self.sources) > 1:
            return "Both"
        return self.sources[0] if self.sources else "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical_key": self.canonical_key,
            "name": self.display_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "profile_ids": self.profile_ids,
            "profile_references": [ref.to_dict() for ref in self.profile_references],
            "groups": [g.to_dict() for g in self.group_memberships],
            "source": self.source,
        }


@dataclass(frozen=True)
class TestSummary:
    """One vendor test, tagged with the tenant it was fetched from."""
    __test__ = False  # not a pytest class

    tenant_id: str
    test_id: str
    profile_id: str
    test_type: Optional[str] = None
    recorded_at: Optional[datetime] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "test_id": self.test_id,
            "profile_id": self.profile_id,
            "test_type": self.test_type,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
        }


@dataclass(frozen=True)
class TrialResult:
    """One recorded measurement within a trial."""
    limb: Optional[str]
    result_name: Optional[str]
    unit: Optional[str]
    value: Any


@dataclass
class Trial:
    """One recorded attempt of a test: zero or more result rows."""
    limb: Optional[str] = None
    results: List[TrialResult] = field(default_factory=list)
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class CanonicalMetricSet:
    """
    Flat map of canonical metric name -> value for one test.

    Holds both raw computed names and alias-resolved names, plus the
    original trials the map was built from.
    """
    metrics: Dict[str, Any] = field(default_factory=dict)
    trials: Tuple[Trial, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.metrics

    def __getitem__(self, name: str) -> Any:
        return self.metrics[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.metrics)

    def __len__(self) -> int:
        return len(self.metrics)

    def get(self, name: str, default: Any = None) -> Any:
        return self.metrics.get(name, default)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.metrics)
