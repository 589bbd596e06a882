"""
Membership sync: apply only the delta between desired and actual members.
"""

import logging
from typing import AbstractSet, Optional, Set

from .directory import IdentityDirectory
from .errors import AmbiguousUserError, NotFoundError
from .models import MembershipFailure, RemoteGroup, RemoteUser, SyncPolicy, SyncReport
from .utils import normalize_email

LOGGER = logging.getLogger(__name__)


class MembershipSync:
    """
    Reconciles the members of one directory group against a set of emails.

    With the DIFF policy the group ends up holding exactly the desired users
    that resolve to a single ACTIVE directory account. Emails that cannot be
    resolved, including entries that are not email addresses at all, are
    skipped and reported; they never fail the sync. Additions
    run before removals.
    """

    def __init__(
        self, directory: IdentityDirectory, policy: SyncPolicy = SyncPolicy.DIFF
    ):
        self.directory = directory
        self.policy = policy

    def _skip(self, email: str, operation: str, reason: str, report: SyncReport) -> None:
        failure = MembershipFailure(email=email, operation=operation, reason=reason)
        report.skipped.append(failure)
        LOGGER.warning(
            "Skipping %s for %s in %s: %s",
            operation,
            email,
            report.group_id,
            reason,
            extra={"membership_failure": failure},
        )

    def _resolve(
        self, email: str, operation: str, report: SyncReport
    ) -> Optional[RemoteUser]:
        if "@" not in email:
            self._skip(email, operation, "not an email address", report)
            return None
        try:
            return self.directory.find_user_by_email(email)
        except (NotFoundError, AmbiguousUserError) as e:
            self._skip(email, operation, str(e), report)
            return None

    def current_emails(self, group: RemoteGroup) -> Set[str]:
        return {
            normalize_email(m.email)
            for m in self.directory.list_group_members(group.id)
            if m.email
        }

    def sync(self, group: RemoteGroup, desired_users: AbstractSet[str]) -> SyncReport:
        desired = {normalize_email(e) for e in desired_users}
        actual = self.current_emails(group)
        report = SyncReport(group_id=group.id)

        self._add_missing(group, desired - actual, report)
        if self.policy is SyncPolicy.DIFF:
            self._remove_unwanted(group, desired, actual, report)

        if report.mutations:
            LOGGER.info(
                "Group %s: added %d, removed %d, skipped %d",
                group.name,
                len(report.added),
                len(report.removed),
                len(report.skipped),
            )
        else:
            LOGGER.info("Group %s membership already up-to-date (size=%d)", group.name, len(actual))
        return report

    def _add_missing(self, group: RemoteGroup, missing: Set[str], report: SyncReport) -> None:
        for email in sorted(missing):
            user = self._resolve(email, "add", report)
            if user is None:
                continue
            if self.policy is SyncPolicy.DIFF and not user.is_active:
                LOGGER.info(
                    "User %s is %s, not adding to %s",
                    email,
                    user.activity_status.value,
                    group.name,
                )
                continue
            self.directory.add_group_member(group.id, user)
            report.added.append(email)
            LOGGER.info("Added %s to %s", email, group.name)

    def _remove_unwanted(
        self, group: RemoteGroup, desired: Set[str], actual: Set[str], report: SyncReport
    ) -> None:
        for email in sorted(actual):
            user = self._resolve(email, "remove", report)
            if user is None:
                continue
            if email in desired and user.is_active:
                continue
            self.directory.remove_group_member(group.id, user)
            report.removed.append(email)
            LOGGER.info(
                "Removed %s from %s (%s)",
                email,
                group.name,
                "inactive" if email in desired else "not desired",
            )
