from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """Metadata for one stored file. Immutable once created."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    original_name: str = Field(alias="originalName")
    stored_name: str = Field(alias="filename")
    size: int = Field(ge=0)
    content_type: str = Field(default="application/octet-stream", alias="mimetype")
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="uploadTime"
    )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


@dataclass
class IncomingFile:
    """One entry of an upload batch as handed over by the transport."""

    original_name: str
    stream: Any
    declared_size: int | None = None
    content_type: str | None = None


@dataclass
class UploadFailure:
    original_name: str
    error: Exception

    def to_json(self) -> dict[str, str]:
        return {
            "originalName": self.original_name,
            "message": getattr(self.error, "message", "Upload failed"),
            "error": str(self.error),
        }


@dataclass
class UploadOutcome:
    records: list[FileRecord]
    failures: list[UploadFailure]
