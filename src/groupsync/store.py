"""
Storage for desired group records.

The reconciler only needs fetch-by-key, finalizer updates and status
updates. ``put`` and ``request_deletion`` are the authoring side: whoever
owns the desired state uses them to write and delete records.

``FileRecordStore`` keeps one JSON document per record and physically
removes a record once deletion was requested and no finalizer is left on
it.
"""

import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Protocol

from .errors import RecordNotFoundError
from .models import DesiredGroupRecord

LOGGER = logging.getLogger(__name__)


class RecordStore(Protocol):
    def get(self, key: str) -> DesiredGroupRecord:
        ...

    def keys(self) -> List[str]:
        ...

    def update(self, record: DesiredGroupRecord) -> None:
        ...

    def update_status(self, record: DesiredGroupRecord) -> None:
        ...


class FileRecordStore:
    SUFFIX = ".json"

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        if not key or os.sep in key or key.startswith("."):
            raise ValueError(f"Invalid record key: {key!r}")
        return os.path.join(self.directory, key + self.SUFFIX)

    def _read(self, key: str) -> Dict[str, Any]:
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise RecordNotFoundError(f"No record stored under {key}") from None

    def _write(self, key: str, data: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp_path, self._path(key))
        except BaseException:
            os.unlink(tmp_path)
            raise

    def keys(self) -> List[str]:
        return sorted(
            name[: -len(self.SUFFIX)]
            for name in os.listdir(self.directory)
            if name.endswith(self.SUFFIX) and not name.startswith(".")
        )

    def get(self, key: str) -> DesiredGroupRecord:
        data = self._read(key)
        unknown = set(data) - DesiredGroupRecord.KNOWN_KEYS
        if unknown:
            LOGGER.warning("Ignoring unknown keys in record %s: %s", key, sorted(unknown))
        stored_name = data.get("name")
        if stored_name and stored_name != key:
            LOGGER.warning(
                "Record %s carries name %r; using the key as the group name", key, stored_name
            )
        data["name"] = key
        return DesiredGroupRecord.from_dict(data)

    def put(self, record: DesiredGroupRecord) -> None:
        """
        Create or replace a record.

        Part of the authoring side of the store, together with
        ``request_deletion``; the reconciler never calls either.
        """
        self._write(record.name, record.to_dict())

    def update(self, record: DesiredGroupRecord) -> None:
        """
        Persist the record's finalizers; drop the record once it is fully released.

        Only ``finalizers`` and ``deletionRequested`` are written. Every other
        key of the stored document, including the authored ``users`` list and
        keys this store does not know, is written back as it was.
        """
        key = record.name
        data = self._read(key)
        # Deletion intent is monotonic.
        deletion_requested = bool(data.get("deletionRequested")) or record.deletion_requested
        if deletion_requested and not record.finalizers:
            os.unlink(self._path(key))
            LOGGER.info("Record %s released and removed", key)
            return
        data["finalizers"] = list(record.finalizers)
        data["deletionRequested"] = deletion_requested
        self._write(key, data)

    def update_status(self, record: DesiredGroupRecord) -> None:
        data = self._read(record.name)
        data["status"] = record.status.to_dict()
        self._write(record.name, data)

    def request_deletion(self, key: str) -> None:
        """Author-side delete: mark a record; without finalizers it goes away at once."""
        record = self.get(key)
        record.request_deletion()
        self.update(record)
