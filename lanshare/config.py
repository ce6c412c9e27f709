from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
import os

MIB = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
        return parsed if parsed > 0 else default
    except ValueError:
        return default


def _env_list(name: str, default: str) -> list[str]:
    values = [item.strip() for item in os.getenv(name, default).split(",")]
    return [item for item in values if item]


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    upload_dir: Path = Path("uploads")
    max_file_size_bytes: int = 100 * MIB
    max_files_per_request: int = 10
    upload_chunk_size: int = MIB
    broadcast_queue_size: int = 100
    partial_max_age_seconds: int = 3600
    partial_sweep_interval_minutes: int = 15
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    public_url: str | None = None
    environment: str = "production"
    log_level: str = "INFO"

    @property
    def max_request_bytes(self) -> int:
        # Multipart framing overhead on top of the payload ceiling.
        return self.max_files_per_request * self.max_file_size_bytes + MIB


def load_settings() -> Settings:
    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
        upload_dir=Path(os.getenv("UPLOAD_DIR", "uploads")),
        max_file_size_bytes=_env_int("MAX_FILE_SIZE_BYTES", 100 * MIB),
        max_files_per_request=_env_int("MAX_FILES_PER_REQUEST", 10),
        upload_chunk_size=_env_int("UPLOAD_CHUNK_SIZE", MIB),
        broadcast_queue_size=_env_int("BROADCAST_QUEUE_SIZE", 100),
        partial_max_age_seconds=_env_int("PARTIAL_MAX_AGE_SECONDS", 3600),
        partial_sweep_interval_minutes=_env_int("PARTIAL_SWEEP_INTERVAL_MINUTES", 15),
        cors_origins=_env_list("CORS_ORIGINS", "*"),
        public_url=os.getenv("PUBLIC_URL") or None,
        environment=os.getenv("ENVIRONMENT", "production"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
