"""Daemon configuration: env-driven via pydantic-settings.

Reads ``POTWARDEN_*`` environment variables and an optional ``.env`` file.
CLI options override individual fields with ``model_copy(update=...)``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WardenConfig(BaseSettings):
    """Runtime configuration for the pot lifecycle daemon.

    Examples
    --------
    Override via environment::

        export POTWARDEN_OUTPUT_ROOT=/srv/forensics
        export POTWARDEN_ROTATION_INTERVAL_HOURS=6
        export POTWARDEN_LOG_LEVEL=DEBUG

    Or via .env file::

        POTWARDEN_CAPTURE_PROMISCUOUS=true
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POTWARDEN_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    log_file: Path | None = None

    # Artifact output
    output_root: Path = Path("artifacts")

    # Scheduling
    rotation_interval_hours: float = Field(default=1.0, gt=0)
    watch_interval_seconds: float = Field(default=5.0, gt=0)

    # Pot discovery
    pot_label: str = "pot.name"

    # Packet capture
    capture_snaplen: int = Field(default=1024, gt=0)
    capture_promiscuous: bool = False
    capture_read_timeout_seconds: float = Field(default=1.0, gt=0)
    capture_stop_timeout_seconds: float = Field(default=30.0, ge=0)

    # Collection
    collect_process_snapshot: bool = True

    # Collaborator / lifecycle timeouts
    docker_timeout_seconds: int = 600
    shutdown_timeout_seconds: float = 10.0

    @property
    def rotation_interval_seconds(self) -> float:
        """Rotation interval converted to seconds."""
        return self.rotation_interval_hours * 3600.0

    @property
    def markers_dir(self) -> Path:
        """Directory holding in-flight / interrupted rotation markers."""
        return self.output_root / ".rotations"

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
