"""Configuration for the manifest DAG engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Settings for the engine and its command line.

    Environment variables:
    - LOG_LEVEL                    (optional)
    - MANIFEST_DAG_MANIFESTS_DIR   (optional)
    - MANIFEST_DAG_SESSIONS_ROOT   (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `EngineSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    manifests_dir: Path = Field(
        default=Path("manifests"),
        validation_alias="MANIFEST_DAG_MANIFESTS_DIR",
        description="Directory scanned for '*.manifest.yaml' workflow manifests",
    )

    sessions_root: Path = Field(
        default=Path("sessions"),
        validation_alias="MANIFEST_DAG_SESSIONS_ROOT",
        description="Directory under which session artifact trees are stored",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value!r}")
        return normalized

    def session_dir(self, persona: str, session_id: str) -> Path:
        """Directory holding one session's artifact tree."""

        return self.sessions_root / persona / session_id
