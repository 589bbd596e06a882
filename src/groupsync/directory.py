"""
Interface the reconciler expects from an identity directory.

Every call is synchronous and may block for a network round trip. Failures
are reported with the exceptions in ``groupsync.errors``.
"""

from typing import List, Protocol

from .models import GroupProfile, RemoteGroup, RemoteUser


class IdentityDirectory(Protocol):
    def create_group(self, profile: GroupProfile) -> RemoteGroup:
        ...

    def update_group(self, group_id: str, profile: GroupProfile) -> RemoteGroup:
        ...

    def get_group(self, group_id: str) -> RemoteGroup:
        """Raises NotFoundError when the group does not exist."""
        ...

    def list_groups(self, name_query: str) -> List[RemoteGroup]:
        """Groups whose name matches the query; exact matching is up to the caller."""
        ...

    def delete_group(self, group_id: str) -> None:
        """Succeeds when the group is already gone."""
        ...

    def list_group_members(self, group_id: str) -> List[RemoteUser]:
        ...

    def add_group_member(self, group_id: str, user: RemoteUser) -> None:
        ...

    def remove_group_member(self, group_id: str, user: RemoteUser) -> None:
        ...

    def find_user_by_email(self, email: str) -> RemoteUser:
        """Raises NotFoundError on zero matches and AmbiguousUserError on several."""
        ...
