"""
Data model for desired group records and the directory objects they map to.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .utils import format_timestamp, normalize_email, parse_timestamp


class ActivityStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    OTHER = "OTHER"


class SyncPolicy(str, enum.Enum):
    """
    DIFF: bidirectional diff, only ACTIVE users are kept in the group.
    ADD_ONLY: union update, resolvable users are added and nobody is removed.
    """

    DIFF = "diff"
    ADD_ONLY = "add_only"


@dataclass(frozen=True)
class GroupProfile:
    name: str
    description: str = ""


@dataclass(frozen=True)
class RemoteUser:
    id: str
    email: str
    activity_status: ActivityStatus = ActivityStatus.OTHER

    @property
    def is_active(self) -> bool:
        return self.activity_status is ActivityStatus.ACTIVE


@dataclass(frozen=True)
class RemoteGroup:
    id: str
    name: str
    description: str = ""
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    last_membership_updated_at: Optional[datetime] = None

    @property
    def profile(self) -> GroupProfile:
        return GroupProfile(name=self.name, description=self.description)


@dataclass
class ObservedStatus:
    remote_id: str = ""
    created_at: Optional[datetime] = None
    last_membership_updated_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.remote_id,
            "created": format_timestamp(self.created_at),
            "lastMembershipUpdated": format_timestamp(self.last_membership_updated_at),
            "lastUpdated": format_timestamp(self.last_updated_at),
        }

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> "ObservedStatus":
        data = data or {}
        return ObservedStatus(
            remote_id=data.get("id") or "",
            created_at=parse_timestamp(data.get("created")),
            last_membership_updated_at=parse_timestamp(
                data.get("lastMembershipUpdated")
            ),
            last_updated_at=parse_timestamp(data.get("lastUpdated")),
        )


def normalize_users(emails: Iterable[str]) -> FrozenSet[str]:
    """Collapse duplicates and blanks. Malformed entries are kept so the sync can report them."""
    return frozenset(normalize_email(e) for e in emails if e and e.strip())


@dataclass
class DesiredGroupRecord:
    """
    Declarative description of one directory group.

    ``name`` doubles as the store key and as the correlation key with the
    directory until ``status.remote_id`` is known.
    """

    name: str
    description: str = ""
    desired_users: FrozenSet[str] = frozenset()
    deletion_requested: bool = False
    finalizers: List[str] = field(default_factory=list)
    status: ObservedStatus = field(default_factory=ObservedStatus)

    # Keys accepted in the stored document; anything else is ignored.
    KNOWN_KEYS = frozenset(
        ("name", "description", "users", "deletionRequested", "finalizers", "status")
    )

    def __post_init__(self):
        self.desired_users = normalize_users(self.desired_users)

    @property
    def profile(self) -> GroupProfile:
        return GroupProfile(name=self.name, description=self.description or "")

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> None:
        if finalizer not in self.finalizers:
            self.finalizers.append(finalizer)

    def remove_finalizer(self, finalizer: str) -> None:
        self.finalizers = [f for f in self.finalizers if f != finalizer]

    def request_deletion(self) -> None:
        self.deletion_requested = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "users": sorted(self.desired_users),
            "deletionRequested": self.deletion_requested,
            "finalizers": list(self.finalizers),
            "status": self.status.to_dict(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DesiredGroupRecord":
        if not data.get("name"):
            raise ValueError("Group record is missing a name")
        return DesiredGroupRecord(
            name=data["name"],
            description=data.get("description") or "",
            desired_users=frozenset(data.get("users") or ()),
            deletion_requested=bool(data.get("deletionRequested", False)),
            finalizers=list(data.get("finalizers") or []),
            status=ObservedStatus.from_dict(data.get("status")),
        )


@dataclass(frozen=True)
class MembershipFailure:
    """A per-email problem that was skipped instead of failing the sync."""

    email: str
    operation: str
    reason: str


@dataclass
class SyncReport:
    group_id: str
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    skipped: List[MembershipFailure] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        return len(self.added) + len(self.removed)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one trigger. Errors are raised, not returned."""

    requeue: bool = False
    report: Optional[SyncReport] = None
