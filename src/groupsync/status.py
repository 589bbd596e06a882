"""
Copies the directory's view of a group onto the record's observed status.
"""

import logging

from .directory import IdentityDirectory
from .models import DesiredGroupRecord, ObservedStatus, RemoteGroup
from .store import RecordStore
from .utils import parse_timestamp

LOGGER = logging.getLogger(__name__)


def project_status(group: RemoteGroup) -> ObservedStatus:
    return ObservedStatus(
        remote_id=group.id,
        created_at=parse_timestamp(group.created_at),
        last_membership_updated_at=parse_timestamp(group.last_membership_updated_at),
        last_updated_at=parse_timestamp(group.last_updated_at),
    )


class StatusProjector:
    def __init__(self, directory: IdentityDirectory, store: RecordStore):
        self.directory = directory
        self.store = store

    def refresh(self, record: DesiredGroupRecord, group_id: str) -> DesiredGroupRecord:
        """Re-read the group and persist its identity and timestamps. Read-only remotely."""
        group = self.directory.get_group(group_id)
        record.status = project_status(group)
        self.store.update_status(record)
        LOGGER.debug("Status of %s now %s", record.name, record.status)
        return record
