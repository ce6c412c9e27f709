from collections.abc import Iterable
from threading import Lock
import logging

from lanshare.errors import NotFound
from lanshare.models import FileRecord

logger = logging.getLogger("lanshare.registry")


class FileRegistry:
    """
    In-memory index of the files currently being shared.

    Keyed by stored name; dict insertion order gives the listing order
    (oldest first). Lives as long as the process does.
    """

    def __init__(self):
        self._lock = Lock()
        self._records: dict[str, FileRecord] = {}

    def append(self, records: Iterable[FileRecord]) -> None:
        batch = list(records)
        with self._lock:
            names = [record.stored_name for record in batch]
            duplicates = [name for name in names if name in self._records]
            if duplicates or len(set(names)) != len(names):
                raise ValueError(f"Stored names already registered: {duplicates or names}")
            for record in batch:
                self._records[record.stored_name] = record
        logger.debug("Registered %d file(s)", len(batch))

    def list(self) -> list[FileRecord]:
        with self._lock:
            return list(self._records.values())

    def find_by_stored_name(self, stored_name: str) -> FileRecord:
        with self._lock:
            record = self._records.get(stored_name)
        if record is None:
            raise NotFound(f"No file registered as {stored_name!r}")
        return record

    def remove(self, stored_name: str) -> FileRecord:
        with self._lock:
            record = self._records.pop(stored_name, None)
        if record is None:
            raise NotFound(f"No file registered as {stored_name!r}")
        return record

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __contains__(self, stored_name: object) -> bool:
        with self._lock:
            return stored_name in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
