"""
Shared fixtures: an in-memory directory and a file-backed record store.
"""

import dataclasses
import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Set, Tuple

import pytest

from groupsync.errors import AmbiguousUserError, NotFoundError
from groupsync.models import (
    ActivityStatus,
    DesiredGroupRecord,
    GroupProfile,
    RemoteGroup,
    RemoteUser,
)
from groupsync.reconciler import GroupReconciler
from groupsync.store import FileRecordStore

MUTATING_CALLS = frozenset(
    (
        "create_group",
        "update_group",
        "delete_group",
        "add_group_member",
        "remove_group_member",
    )
)

FINALIZER = "test.finalizer"


class FakeDirectory:
    """Directory double that keeps state in dicts and records every call."""

    def __init__(self):
        self.groups: Dict[str, RemoteGroup] = {}
        self.members: Dict[str, Set[str]] = {}
        self.users: Dict[str, List[RemoteUser]] = {}
        self.calls: List[Tuple] = []
        self._failures: List[Tuple[str, Exception, Callable]] = []
        self._ids = itertools.count(1)
        self.clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # ---------- test helpers ----------

    def _now(self) -> datetime:
        self.clock += timedelta(minutes=1)
        return self.clock

    def _call(self, op: str, *args) -> None:
        self.calls.append((op,) + args)
        for name, exc, when in self._failures:
            if name == op and when(*args):
                raise exc

    def fail_on(self, op: str, exc: Exception, when: Callable = lambda *args: True):
        self._failures.append((op, exc, when))

    def clear_failures(self):
        self._failures.clear()

    def add_user(self, email: str, status: ActivityStatus = ActivityStatus.ACTIVE) -> RemoteUser:
        user = RemoteUser(id=f"user-{email}", email=email, activity_status=status)
        self.users.setdefault(email, []).append(user)
        return user

    def set_status(self, email: str, status: ActivityStatus) -> None:
        self.users[email] = [
            dataclasses.replace(u, activity_status=status) for u in self.users[email]
        ]

    def seed_group(self, name: str, members=(), description: str = "") -> RemoteGroup:
        group = self.create_group(GroupProfile(name=name, description=description))
        self.members[group.id] = set(members)
        self.calls.clear()
        return group

    def member_emails(self, group_id: str) -> Set[str]:
        return set(self.members.get(group_id, set()))

    def mutating_calls(self) -> List[Tuple]:
        return [c for c in self.calls if c[0] in MUTATING_CALLS]

    # ---------- IdentityDirectory ----------

    def create_group(self, profile: GroupProfile) -> RemoteGroup:
        self._call("create_group", profile)
        now = self._now()
        group = RemoteGroup(
            id=f"groups/{next(self._ids)}",
            name=profile.name,
            description=profile.description,
            created_at=now,
            last_updated_at=now,
        )
        self.groups[group.id] = group
        self.members[group.id] = set()
        return group

    def update_group(self, group_id: str, profile: GroupProfile) -> RemoteGroup:
        self._call("update_group", group_id, profile)
        if group_id not in self.groups:
            raise NotFoundError(f"group {group_id}")
        group = dataclasses.replace(
            self.groups[group_id],
            name=profile.name,
            description=profile.description,
            last_updated_at=self._now(),
        )
        self.groups[group_id] = group
        return group

    def get_group(self, group_id: str) -> RemoteGroup:
        self._call("get_group", group_id)
        if group_id not in self.groups:
            raise NotFoundError(f"group {group_id}")
        return self.groups[group_id]

    def list_groups(self, name_query: str) -> List[RemoteGroup]:
        self._call("list_groups", name_query)
        return [g for g in self.groups.values() if name_query.lower() in g.name.lower()]

    def delete_group(self, group_id: str) -> None:
        self._call("delete_group", group_id)
        self.groups.pop(group_id, None)
        self.members.pop(group_id, None)

    def list_group_members(self, group_id: str) -> List[RemoteUser]:
        self._call("list_group_members", group_id)
        return [RemoteUser(id=e, email=e) for e in sorted(self.members[group_id])]

    def _touch_membership(self, group_id: str) -> None:
        self.groups[group_id] = dataclasses.replace(
            self.groups[group_id], last_membership_updated_at=self._now()
        )

    def add_group_member(self, group_id: str, user: RemoteUser) -> None:
        self._call("add_group_member", group_id, user.email)
        self.members[group_id].add(user.email)
        self._touch_membership(group_id)

    def remove_group_member(self, group_id: str, user: RemoteUser) -> None:
        self._call("remove_group_member", group_id, user.email)
        self.members[group_id].discard(user.email)
        self._touch_membership(group_id)

    def find_user_by_email(self, email: str) -> RemoteUser:
        self._call("find_user_by_email", email)
        matches = self.users.get(email, [])
        if not matches:
            raise NotFoundError(f"User not found: {email}")
        if len(matches) > 1:
            raise AmbiguousUserError(f"More than one user found with email {email}")
        return matches[0]


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def store(tmp_path):
    return FileRecordStore(str(tmp_path / "records"))


@pytest.fixture
def reconciler(directory, store):
    return GroupReconciler(directory, store, finalizer=FINALIZER)


@pytest.fixture
def make_record(store):
    def _make(name="engineering", users=(), description="", **kwargs):
        record = DesiredGroupRecord(
            name=name, description=description, desired_users=frozenset(users), **kwargs
        )
        store.put(record)
        return record

    return _make
