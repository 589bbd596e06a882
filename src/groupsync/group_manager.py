"""
Find-or-create-or-update of the directory group behind a desired record.
"""

import logging
from typing import Optional

from .directory import IdentityDirectory
from .errors import ConflictError, NotFoundError
from .models import DesiredGroupRecord, RemoteGroup

LOGGER = logging.getLogger(__name__)


class GroupManager:
    def __init__(self, directory: IdentityDirectory):
        self.directory = directory

    def find_group(self, record: DesiredGroupRecord) -> Optional[RemoteGroup]:
        """
        Locate the directory group for ``record``.

        The remote id recorded in the status is preferred; if that group is
        gone, or no id is known yet, fall back to an exact name match.
        Errors other than not-found propagate.
        """
        remote_id = record.status.remote_id
        if remote_id:
            try:
                return self.directory.get_group(remote_id)
            except NotFoundError:
                LOGGER.info(
                    "Group %s not found by id %s, searching by name",
                    record.name,
                    remote_id,
                )
        return self.find_group_by_name(record.name)

    def find_group_by_name(self, name: str) -> Optional[RemoteGroup]:
        exact = [g for g in self.directory.list_groups(name) if g.name == name]
        if len(exact) > 1:
            raise ConflictError(f"{len(exact)} directory groups are named {name}")
        return exact[0] if exact else None

    def upsert(self, record: DesiredGroupRecord) -> RemoteGroup:
        """
        Make sure a group with the desired profile exists and return it.
        An existing group whose profile differs is overwritten (name and
        description), last writer wins.
        """
        profile = record.profile
        group = self.find_group(record)
        if group is not None:
            if group.profile == profile:
                LOGGER.debug("Group %s already up-to-date", record.name)
                return group
            group = self.directory.update_group(group.id, profile)
            LOGGER.info("Updated group %s (%s)", record.name, group.id)
            return group

        group = self.directory.create_group(profile)
        LOGGER.info("Created group %s (%s)", record.name, group.id)
        return group

    def delete(self, record: DesiredGroupRecord) -> None:
        """Delete the group if it exists. A missing group counts as deleted."""
        group = self.find_group(record)
        if group is None:
            LOGGER.info("Group %s already absent", record.name)
            return
        self.directory.delete_group(group.id)
        LOGGER.info("Deleted group %s (%s)", record.name, group.id)
