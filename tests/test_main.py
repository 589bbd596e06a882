"""
Tests the trigger delivery loop of the entry point.
"""

from unittest.mock import Mock, patch

import pytest

from groupsync.errors import RequeueExhaustedError, TransportError
from groupsync.main import deliver, main
from groupsync.models import MembershipFailure, ReconcileResult, SyncReport


def test_requeued_keys_are_delivered_again():
    reconciler = Mock()
    reconciler.reconcile.side_effect = [
        ReconcileResult(requeue=True),
        ReconcileResult(),
        ReconcileResult(),
    ]

    failures = deliver(reconciler, ["a", "b"], max_passes=3)

    assert failures == {}
    assert [c.args[0] for c in reconciler.reconcile.call_args_list] == ["a", "b", "a"]


def test_failures_are_retried_and_reported():
    error = TransportError("backend error", 503)
    reconciler = Mock()
    reconciler.reconcile.side_effect = [error, ReconcileResult(), error]

    failures = deliver(reconciler, ["a", "b"], max_passes=2)

    assert failures == {"a": error}
    assert reconciler.reconcile.call_count == 3


def test_recovered_failures_are_cleared():
    reconciler = Mock()
    report = SyncReport(
        group_id="groups/1",
        skipped=[MembershipFailure("ghost@x.com", "add", "User not found")],
    )
    reconciler.reconcile.side_effect = [
        TransportError("backend error", 503),
        ReconcileResult(report=report),
    ]

    assert deliver(reconciler, ["a"], max_passes=2) == {}
    assert reconciler.reconcile.call_count == 2


def test_keys_still_requeued_after_the_last_pass_are_reported():
    reconciler = Mock()
    reconciler.reconcile.return_value = ReconcileResult(requeue=True)

    failures = deliver(reconciler, ["eng"], max_passes=1)

    assert list(failures) == ["eng"]
    assert isinstance(failures["eng"], RequeueExhaustedError)
    assert reconciler.reconcile.call_count == 1


def test_new_record_needs_more_than_one_pass(reconciler, directory, make_record):
    make_record(name="eng")

    assert list(deliver(reconciler, ["eng"], max_passes=1)) == ["eng"]
    assert directory.groups == {}

    assert deliver(reconciler, ["eng"], max_passes=2) == {}
    assert len(directory.groups) == 1


def test_main_exits_non_zero_when_records_do_not_settle():
    pending = {"eng": RequeueExhaustedError("eng still requeued after 1 pass(es)")}
    with patch("groupsync.main.Config") as config, patch(
        "groupsync.main.setup_logging"
    ), patch("groupsync.main.build_google_directory"), patch(
        "groupsync.main.FileRecordStore"
    ), patch(
        "groupsync.main.deliver", return_value=pending
    ):
        config.load.return_value.max_passes = 1
        with pytest.raises(SystemExit) as exc_info:
            main()

    assert exc_info.value.code == 1
