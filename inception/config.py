# inception/config.py
"""
Configuration for the Inception tool server.

Values are loaded from environment variables (and an optional .env file) and
validated with Pydantic. The configuration is read once at startup; nothing
reconfigures it while the server is running.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import structlog
from pydantic import BeforeValidator, Field, model_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

# Resolve .env relative to the project root (one level above inception/),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_EXECUTABLE = "llm"
DEFAULT_MAX_CONCURRENT = 10
DEFAULT_INTERPRETER = "/bin/bash"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _coerce_ceiling(value: object) -> int:
    """Parse a concurrency ceiling from an env-var value.

    Non-numeric and zero values mean "use the default", so a stray
    ``MCP_INCEPTION_MAX_CONCURRENT=abc`` never disables the server.
    """
    if isinstance(value, bool):
        return DEFAULT_MAX_CONCURRENT
    if isinstance(value, (int, float)):
        parsed = int(value)
    elif isinstance(value, str):
        try:
            parsed = int(value.strip().split(".", 1)[0])
        except ValueError:
            return DEFAULT_MAX_CONCURRENT
    else:
        return DEFAULT_MAX_CONCURRENT
    return parsed or DEFAULT_MAX_CONCURRENT


Ceiling = Annotated[int, BeforeValidator(_coerce_ceiling)]


class InceptionConfig(BaseSettings):
    """Process-wide settings for the delegate channel and dispatcher."""

    executable: str = Field(DEFAULT_EXECUTABLE, alias="MCP_INCEPTION_EXECUTABLE")
    working_directory: Path = Field(
        default_factory=lambda: Path(os.getcwd()),
        alias="MCP_INCEPTION_WORKING_DIR",
    )
    max_concurrent: Ceiling = Field(DEFAULT_MAX_CONCURRENT, alias="MCP_INCEPTION_MAX_CONCURRENT")
    # "none" launches the executable directly instead of through an interpreter.
    interpreter: str = Field(DEFAULT_INTERPRETER, alias="MCP_INCEPTION_INTERPRETER")
    trace_io: bool = Field(True, alias="MCP_INCEPTION_TRACE_IO")
    log_level: str = Field("INFO", alias="MCP_INCEPTION_LOG_LEVEL")

    model_config = {
        "env_file": _ENV_FILE,
        "extra": "ignore",
        "populate_by_name": True,
        "env_ignore_empty": True,
    }

    @model_validator(mode="after")
    def normalize(self) -> "InceptionConfig":
        self.max_concurrent = max(1, int(self.max_concurrent))
        self.executable = self.executable.strip() or DEFAULT_EXECUTABLE
        interpreter = self.interpreter.strip()
        if interpreter.lower() == "none":
            interpreter = ""
        self.interpreter = interpreter
        self.working_directory = Path(self.working_directory).expanduser().resolve()
        level = self.log_level.strip().upper()
        if level not in _LOG_LEVELS:
            logger.warning("config.invalid_log_level", value=self.log_level)
            level = "INFO"
        self.log_level = level
        return self

    @property
    def executable_path(self) -> Path:
        """The executable resolved against the working directory."""
        return self.working_directory / self.executable

    def __repr__(self) -> str:
        return (
            f"InceptionConfig(executable={self.executable!r}, "
            f"working_directory={str(self.working_directory)!r}, "
            f"max_concurrent={self.max_concurrent})"
        )
