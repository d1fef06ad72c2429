"""Configuration for the shardsearch node using Pydantic Settings.

Settings are instantiated explicitly and handed to the components that need
them (partition routers, the stream coordinator, logging). Nothing in the
package reads a process-wide settings instance.
"""

from pathlib import Path
import socket

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ROOT_PATH = Path(".") / "data" / "merge_index"


class Settings(BaseSettings):
    """Strictly typed node configuration loaded from ``SHARDSEARCH_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="SHARDSEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    root_path: Path = Field(
        default=DEFAULT_ROOT_PATH,
        description="Root directory for partition index stores; each partition lives in <root_path>/<partition>",
    )
    schema_dir: Path | None = Field(default=None, description="Directory of *.json schema definitions to preload")

    # Identity
    node_name: str = Field(
        default_factory=lambda: f"shardsearch@{socket.gethostname()}",
        min_length=1,
        description="Logical node identity used for stream affinity",
    )

    # Partition workers
    partition_queue_size: int = Field(default=0, ge=0, description="Inbound command queue bound (0 = unbounded)")
    stream_batch_size: int = Field(default=500, ge=1, description="Results per StreamBatch reply")
    stream_timeout_seconds: float = Field(
        default=30.0, gt=0.0, description="Coordinator wait for handshake and stream completion"
    )

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    json_logs: bool = Field(default=True, description="Emit structured JSON logs")

    # Tracing
    otlp_endpoint: str = Field(default="", description="OTLP/HTTP traces endpoint; empty disables export")
    service_name: str = Field(default="shardsearch", description="Service name reported on spans")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return normalized

    def partition_path(self, partition: int) -> Path:
        """Return the store directory for a partition."""
        return self.root_path / str(partition)
