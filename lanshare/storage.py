from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from time import time
import logging
import os
import re
import uuid

import aiofiles
import aiofiles.os

from lanshare.errors import (
    NotFound,
    PathTraversalRejected,
    PayloadTooLarge,
    StorageWriteError,
)

logger = logging.getLogger("lanshare.storage")

PARTIAL_DIR_NAME = ".partial"
MAX_STORED_NAME_BYTES = 255
DEFAULT_CHUNK_SIZE = 1024 * 1024

_UNSAFE_CHARS_RE = re.compile(r'[\x00-\x1f\x7f<>:"|?*]')
STORED_NAME_RE = re.compile(r"^(?P<stamp>\d{13})(?:\.(?P<seq>\d+))?-(?P<name>.+)$")


@dataclass
class StoredFile:
    stored_name: str
    size: int
    modified_at: float = 0.0


def sanitize_filename(raw: str | None) -> str:
    """Reduce a client-supplied filename to a safe, single path component."""
    if not raw:
        raise PathTraversalRejected("Filename is required")

    # Strip path components for both POSIX and Windows separators
    name = PurePosixPath(raw.replace("\\", "/")).name
    name = _UNSAFE_CHARS_RE.sub("_", name).strip()

    if not name or name in (".", ".."):
        raise PathTraversalRejected(f"Invalid filename: {raw!r}")

    return name


def _fit_name(name: str, budget: int) -> str:
    if len(name.encode("utf-8")) <= budget:
        return name
    path = PurePosixPath(name)
    suffix = path.suffix if len(path.suffix.encode("utf-8")) < budget // 2 else ""
    stem = name[: len(name) - len(suffix)] if suffix else name
    while stem and len((stem + suffix).encode("utf-8")) > budget:
        stem = stem[:-1]
    return stem + suffix


class ContentStore:
    """Flat directory of uploaded files addressed by their stored name."""

    def __init__(self, root: Path, max_file_size: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root)
        self.partial_dir = self.root / PARTIAL_DIR_NAME
        self.max_file_size = max_file_size
        self.chunk_size = chunk_size
        self._reserved: set[str] = set()

    def prepare(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.partial_dir.mkdir(exist_ok=True)

    def _path_for(self, stored_name: str) -> Path:
        if (
            not stored_name
            or stored_name.startswith(".")
            or PurePosixPath(stored_name.replace("\\", "/")).name != stored_name
        ):
            raise PathTraversalRejected(f"Invalid stored name: {stored_name!r}")
        path = self.root / stored_name
        if path.resolve().parent != self.root.resolve():
            raise PathTraversalRejected(f"Invalid stored name: {stored_name!r}")
        return path

    def _allocate_name(self, safe_name: str) -> str:
        stamp = int(time() * 1000)
        seq = 0
        while True:
            prefix = f"{stamp}-" if seq == 0 else f"{stamp}.{seq}-"
            candidate = prefix + _fit_name(safe_name, MAX_STORED_NAME_BYTES - len(prefix))
            if candidate not in self._reserved and not (self.root / candidate).exists():
                # No await between the check and the reservation.
                self._reserved.add(candidate)
                return candidate
            seq += 1

    def exists(self, stored_name: str) -> bool:
        try:
            return self._path_for(stored_name).is_file()
        except PathTraversalRejected:
            return False

    async def store(self, original_name: str | None, stream, declared_size: int | None = None) -> StoredFile:
        if declared_size is not None and declared_size > self.max_file_size:
            raise PayloadTooLarge(
                f"{original_name!r} is {declared_size} bytes, limit is {self.max_file_size}"
            )

        safe_name = sanitize_filename(original_name)
        stored_name = self._allocate_name(safe_name)
        target = self._path_for(stored_name)
        partial = self.partial_dir / uuid.uuid4().hex
        written = 0
        committed = False
        try:
            async with aiofiles.open(partial, "wb") as out:
                while True:
                    chunk = await stream.read(self.chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_file_size:
                        raise PayloadTooLarge(
                            f"{original_name!r} exceeds the limit of {self.max_file_size} bytes"
                        )
                    await out.write(chunk)
            await aiofiles.os.rename(partial, target)
            committed = True
        except OSError as exc:
            logger.error("Failed to write %s: %s", stored_name, exc)
            raise StorageWriteError(f"Could not store {original_name!r}") from exc
        finally:
            self._reserved.discard(stored_name)
            if not committed:
                try:
                    partial.unlink(missing_ok=True)
                except OSError:
                    logger.exception("Failed to clean up partial upload %s", partial)

        logger.info("Stored %s (%d bytes)", stored_name, written)
        return StoredFile(stored_name=stored_name, size=written)

    def retrieve(self, stored_name: str) -> Path:
        path = self._path_for(stored_name)
        if not path.is_file():
            raise NotFound(f"No stored file named {stored_name!r}")
        return path

    async def remove(self, stored_name: str) -> None:
        path = self._path_for(stored_name)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as exc:
            raise NotFound(f"No stored file named {stored_name!r}") from exc
        except OSError as exc:
            logger.error("Failed to remove %s: %s", stored_name, exc)
            raise StorageWriteError(f"Could not remove {stored_name!r}") from exc
        logger.info("Removed %s", stored_name)

    def scan(self) -> list[StoredFile]:
        found = []
        if not self.root.is_dir():
            return found
        for entry in os.scandir(self.root):
            if entry.name.startswith(".") or not entry.is_file(follow_symlinks=False):
                continue
            stat = entry.stat(follow_symlinks=False)
            found.append(StoredFile(entry.name, stat.st_size, stat.st_mtime))
        return found

    def sweep_partials(self, max_age_seconds: int) -> int:
        """Delete abandoned partial uploads older than ``max_age_seconds``."""
        if not self.partial_dir.is_dir():
            return 0
        cutoff = time() - max_age_seconds
        removed = 0
        for entry in os.scandir(self.partial_dir):
            try:
                if entry.is_file() and entry.stat().st_mtime < cutoff:
                    os.unlink(entry.path)
                    removed += 1
            except OSError as exc:
                logger.warning("Could not sweep partial file %s: %s", entry.path, exc)
        if removed:
            logger.info("Swept %d stale partial upload(s)", removed)
        return removed
