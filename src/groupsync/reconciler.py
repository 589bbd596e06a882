"""
Lifecycle handling for group records: finalizer, sync path and deletion path.

Exactly one step runs per trigger. A record without the finalizer only
gets the finalizer attached and asks to be requeued; a record marked for
deletion keeps its finalizer until the directory group is confirmed gone.
Errors propagate to the caller, which is expected to deliver the trigger
again later.
"""

import enum
import logging

from .directory import IdentityDirectory
from .errors import RecordNotFoundError
from .group_manager import GroupManager
from .membership import MembershipSync
from .models import DesiredGroupRecord, ReconcileResult, SyncPolicy
from .status import StatusProjector
from .store import RecordStore

LOGGER = logging.getLogger(__name__)

DEFAULT_FINALIZER = "groupsync.finalizer"


class LifecycleState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PENDING_DELETION = "PENDING_DELETION"
    TERMINAL = "TERMINAL"


def lifecycle_state(record: DesiredGroupRecord, finalizer: str) -> LifecycleState:
    if not record.deletion_requested:
        return LifecycleState.ACTIVE
    if record.has_finalizer(finalizer):
        return LifecycleState.PENDING_DELETION
    return LifecycleState.TERMINAL


class GroupReconciler:
    def __init__(
        self,
        directory: IdentityDirectory,
        store: RecordStore,
        finalizer: str = DEFAULT_FINALIZER,
        policy: SyncPolicy = SyncPolicy.DIFF,
    ):
        self.store = store
        self.finalizer = finalizer
        self.groups = GroupManager(directory)
        self.members = MembershipSync(directory, policy)
        self.status = StatusProjector(directory, store)

    def reconcile(self, key: str) -> ReconcileResult:
        try:
            record = self.store.get(key)
        except RecordNotFoundError:
            LOGGER.info("Record %s no longer exists, nothing to do", key)
            return ReconcileResult()

        state = lifecycle_state(record, self.finalizer)
        LOGGER.debug("Reconciling %s in state %s", key, state.value)

        if state is LifecycleState.ACTIVE:
            if not record.has_finalizer(self.finalizer):
                record.add_finalizer(self.finalizer)
                self.store.update(record)
                LOGGER.info("Attached finalizer to %s", key)
                return ReconcileResult(requeue=True)
            return self._sync(record)

        if state is LifecycleState.PENDING_DELETION:
            return self._finalize(record)

        return ReconcileResult()

    def _sync(self, record: DesiredGroupRecord) -> ReconcileResult:
        try:
            group = self.groups.upsert(record)
        except Exception as e:
            LOGGER.error("Unable to upsert group %s: %s", record.name, e)
            raise

        try:
            report = self.members.sync(group, record.desired_users)
        except Exception as e:
            LOGGER.error("Unable to sync members of group %s: %s", record.name, e)
            raise

        try:
            self.status.refresh(record, group.id)
        except Exception as e:
            LOGGER.error("Unable to update status of %s: %s", record.name, e)
            raise
        return ReconcileResult(report=report)

    def _finalize(self, record: DesiredGroupRecord) -> ReconcileResult:
        # Keep the finalizer on failure so the delete is attempted again.
        try:
            self.groups.delete(record)
        except Exception as e:
            LOGGER.error("Unable to delete group %s, keeping finalizer: %s", record.name, e)
            raise

        record.remove_finalizer(self.finalizer)
        self.store.update(record)
        LOGGER.info("Removed finalizer from %s", record.name)
        return ReconcileResult()
