from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
import asyncio
import logging
import mimetypes
import uuid

from lanshare.errors import FileShareError, NotFound, TooManyFiles
from lanshare.models import FileRecord, IncomingFile, UploadFailure, UploadOutcome
from lanshare.services.broadcast import BroadcastChannel, FileRemoved, FilesAdded
from lanshare.services.registry import FileRegistry
from lanshare.storage import STORED_NAME_RE, ContentStore, StoredFile

logger = logging.getLogger("lanshare.files")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _new_id() -> str:
    return uuid.uuid4().hex


def _record_from_disk(stored: StoredFile) -> FileRecord:
    match = STORED_NAME_RE.match(stored.stored_name)
    if match:
        original_name = match.group("name")
        uploaded_at = datetime.fromtimestamp(int(match.group("stamp")) / 1000, tz=UTC)
    else:
        original_name = stored.stored_name
        uploaded_at = datetime.fromtimestamp(stored.modified_at, tz=UTC)
    content_type, _ = mimetypes.guess_type(original_name)
    return FileRecord(
        id=_new_id(),
        original_name=original_name,
        stored_name=stored.stored_name,
        size=stored.size,
        content_type=content_type or DEFAULT_CONTENT_TYPE,
        uploaded_at=uploaded_at,
    )


def _disk_order(stored: StoredFile) -> tuple:
    match = STORED_NAME_RE.match(stored.stored_name)
    if match:
        return (int(match.group("stamp")) / 1000, int(match.group("seq") or 0), stored.stored_name)
    return (stored.modified_at, 0, stored.stored_name)


class FileService:
    """Upload, delete and list operations over storage, registry and broadcast."""

    def __init__(
        self,
        storage: ContentStore,
        registry: FileRegistry,
        broadcast: BroadcastChannel,
        max_files_per_request: int = 10,
    ):
        self.storage = storage
        self.registry = registry
        self.broadcast = broadcast
        self.max_files_per_request = max_files_per_request
        self._mutation_lock = asyncio.Lock()

    async def handle_upload(self, batch: Sequence[IncomingFile]) -> UploadOutcome:
        if len(batch) > self.max_files_per_request:
            raise TooManyFiles(
                f"Received {len(batch)} files, at most {self.max_files_per_request} are allowed per upload"
            )

        uploaded_at = datetime.now(UTC)
        records: list[FileRecord] = []
        failures: list[UploadFailure] = []
        try:
            for item in batch:
                try:
                    stored = await self.storage.store(
                        item.original_name, item.stream, declared_size=item.declared_size
                    )
                except FileShareError as exc:
                    logger.warning("Upload of %r failed: %s", item.original_name, exc)
                    failures.append(UploadFailure(original_name=item.original_name, error=exc))
                    continue
                records.append(
                    FileRecord(
                        id=_new_id(),
                        original_name=item.original_name,
                        stored_name=stored.stored_name,
                        size=stored.size,
                        content_type=item.content_type or DEFAULT_CONTENT_TYPE,
                        uploaded_at=uploaded_at,
                    )
                )
        except BaseException:
            # Aborted batches never reach the registry, so their files must go too.
            await self._discard(records)
            raise

        if not records and failures:
            first = failures[0].error
            first.failures = tuple(failures)
            raise first

        if records:
            async with self._mutation_lock:
                self.registry.append(records)
                self.broadcast.publish(FilesAdded(tuple(records)))
            logger.info(
                "Upload accepted: %d file(s), %d failed",
                len(records),
                len(failures),
                extra={"stored_names": [record.stored_name for record in records]},
            )
        return UploadOutcome(records=records, failures=failures)

    async def handle_delete(self, stored_name: str) -> FileRecord:
        async with self._mutation_lock:
            self.registry.find_by_stored_name(stored_name)
            try:
                await self.storage.remove(stored_name)
            except NotFound:
                logger.warning("Backing file of %s was already gone, dropping its record", stored_name)
            record = self.registry.remove(stored_name)
            self.broadcast.publish(FileRemoved(stored_name))
        logger.info("Deleted %s (%s)", stored_name, record.original_name)
        return record

    async def _discard(self, records: list[FileRecord]) -> None:
        for record in records:
            try:
                await self.storage.remove(record.stored_name)
            except FileShareError as exc:
                logger.warning("Could not discard %s after an aborted upload: %s", record.stored_name, exc)
        if records:
            logger.warning("Discarded %d file(s) of an aborted upload", len(records))

    def handle_list(self) -> list[FileRecord]:
        return self.registry.list()

    def open_download(self, stored_name: str) -> tuple[Path, FileRecord]:
        record = self.registry.find_by_stored_name(stored_name)
        return self.storage.retrieve(stored_name), record

    def rebuild_registry(self) -> int:
        """Re-register every committed file found in the content directory."""
        found = sorted(self.storage.scan(), key=_disk_order)
        self.registry.clear()
        self.registry.append(_record_from_disk(stored) for stored in found)
        logger.info("Registry rebuilt with %d file(s) from %s", len(found), self.storage.root)
        return len(found)
