"""Shared CLI plumbing: configuration, logging and collaborator construction."""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from potwarden.bridge.docker_bridge import ContainerBackend, DockerBackend
from potwarden.config import WardenConfig

LOG_FORMAT = "%(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def load_config(**overrides: Any) -> WardenConfig:
    """Environment configuration with CLI options (non-``None``) on top."""
    return WardenConfig(**{key: value for key, value in overrides.items() if value is not None})


def setup_logging(config: WardenConfig) -> None:
    """Rich console logging on stderr, plus a plain log file if configured."""
    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=not config.is_production,
            show_path=False,
        )
    ]
    if config.log_file is not None:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=config.log_level.upper(),
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )


def make_backend(config: WardenConfig) -> ContainerBackend:
    return DockerBackend(config.pot_label, timeout=config.docker_timeout_seconds)
