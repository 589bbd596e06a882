import logging
import sys
from typing import Dict, Iterable, List

from .config import Config
from .errors import RequeueExhaustedError
from .google_directory import GoogleDirectory
from .reconciler import GroupReconciler
from .store import FileRecordStore
from .utils import setup_logging

LOGGER = logging.getLogger(__name__)


def build_google_directory(cfg: Config) -> GoogleDirectory:
    creds_info = cfg.get_service_account_info()
    return GoogleDirectory(
        creds_info=creds_info,
        delegated_subject=cfg.delegated_subject,
        group_domain=cfg.group_domain,
        customer_id=cfg.customer_id,
        google_api_scopes=cfg.gauth_scopes,
        http_timeout=cfg.http_timeout,
    )


def deliver(reconciler: GroupReconciler, keys: Iterable[str], max_passes: int) -> Dict[str, Exception]:
    """
    Trigger every key, then re-deliver the ones that asked for a requeue or
    failed, for at most ``max_passes`` passes. Returns every key that did not
    settle: the last error for failing keys, ``RequeueExhaustedError`` for
    keys that were still asking for a requeue.
    """
    pending: List[str] = list(keys)
    failures: Dict[str, Exception] = {}
    for attempt in range(1, max_passes + 1):
        if not pending:
            break
        LOGGER.info("Pass %d: reconciling %d record(s)", attempt, len(pending))
        requeue: List[str] = []
        failures = {}
        for key in pending:
            try:
                result = reconciler.reconcile(key)
            except Exception as e:
                LOGGER.error("Reconcile of %s failed: %s", key, e)
                failures[key] = e
                requeue.append(key)
                continue
            if result.requeue:
                requeue.append(key)
            if result.report and result.report.skipped:
                for failure in result.report.skipped:
                    LOGGER.warning(
                        "Record %s: could not %s %s (%s)",
                        key,
                        failure.operation,
                        failure.email,
                        failure.reason,
                    )
        pending = requeue
    if pending:
        LOGGER.warning("Still pending after %d pass(es): %s", max_passes, pending)
    for key in pending:
        if key not in failures:
            failures[key] = RequeueExhaustedError(
                f"{key} still requeued after {max_passes} pass(es)"
            )
    return failures


def main():
    try:
        cfg = Config.load()
        setup_logging(cfg.log_level, cfg.log_file)
        LOGGER.info("Configuration loaded successfully")

        directory = build_google_directory(cfg)
        store = FileRecordStore(cfg.records_dir)
        reconciler = GroupReconciler(
            directory,
            store,
            finalizer=cfg.finalizer_name,
            policy=cfg.sync_policy,
        )
        LOGGER.info(
            "Reconciler initialized (records=%s, policy=%s)",
            cfg.records_dir,
            cfg.sync_policy.value,
        )

        failures = deliver(reconciler, store.keys(), cfg.max_passes)
    except Exception as e:
        LOGGER.error("An error occurred: %s", e)
        sys.exit(1)

    if failures:
        LOGGER.error("%d record(s) did not settle: %s", len(failures), sorted(failures))
        sys.exit(1)
    LOGGER.info("Group reconciliation completed successfully")


if __name__ == "__main__":
    main()
