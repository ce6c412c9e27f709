from io import BytesIO
import asyncio

import pytest
from fastapi.testclient import TestClient

from lanshare.config import Settings
from lanshare.main import create_app
from lanshare.models import IncomingFile
from lanshare.services.broadcast import BroadcastChannel
from lanshare.services.file_service import FileService
from lanshare.services.registry import FileRegistry
from lanshare.storage import ContentStore

PUBLIC_URL = "http://share.test:3000"


class FakeStream:
    """Async byte stream in the shape of Starlette's UploadFile.read()."""

    def __init__(self, data: bytes, fail_on_read: int | None = None, exc: BaseException | None = None):
        self._buffer = BytesIO(data)
        self._reads = 0
        self._fail_on_read = fail_on_read
        self._exc = exc or OSError("connection reset")

    async def read(self, size: int = -1) -> bytes:
        self._reads += 1
        if self._fail_on_read is not None and self._reads >= self._fail_on_read:
            raise self._exc
        await asyncio.sleep(0)
        return self._buffer.read(size)


def incoming(name: str, data: bytes = b"hi", content_type: str = "text/plain", declared_size=-1):
    return IncomingFile(
        original_name=name,
        stream=FakeStream(data),
        declared_size=len(data) if declared_size == -1 else declared_size,
        content_type=content_type,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        upload_dir=tmp_path / "uploads",
        max_file_size_bytes=1024,
        max_files_per_request=10,
        upload_chunk_size=4,
        public_url=PUBLIC_URL,
    )


@pytest.fixture
def storage(settings):
    store = ContentStore(
        settings.upload_dir,
        max_file_size=settings.max_file_size_bytes,
        chunk_size=settings.upload_chunk_size,
    )
    store.prepare()
    return store


@pytest.fixture
def registry():
    return FileRegistry()


@pytest.fixture
def broadcast():
    return BroadcastChannel(queue_size=10)


@pytest.fixture
def service(storage, registry, broadcast, settings):
    return FileService(
        storage, registry, broadcast, max_files_per_request=settings.max_files_per_request
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
