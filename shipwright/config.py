"""Runtime settings — env-driven.

Centralized settings using pydantic-settings. Reads from a ``.env`` file and
``SHIPWRIGHT_*`` environment variables. Project-level pipeline layout
(targets, repositories, signing key id) lives in ``shipwright.toml`` instead;
see :class:`shipwright.models.config.PipelineConfig`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export SHIPWRIGHT_LOG_LEVEL=DEBUG
        export SHIPWRIGHT_MAX_WORKERS=8
        export SHIPWRIGHT_GITHUB_TOKEN=ghp_...

    Or via .env file::

        SHIPWRIGHT_ENVIRONMENT=ci
        SHIPWRIGHT_PIPELINE_TIMEOUT_SECONDS=3600
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SHIPWRIGHT_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"

    # Storage paths
    work_dir: Path = Path(".shipwright/work")
    artifact_store_path: Path = Path(".shipwright/artifacts")
    ledger_path: Path = Path(".shipwright/ledger.db")

    # Scheduling
    max_workers: int = 4
    pipeline_timeout_seconds: float | None = None
    command_timeout_seconds: float | None = None

    # Release publishing
    release_max_attempts: int = 3
    release_backoff_seconds: float = 2.0
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_uploads_url: str = "https://uploads.github.com"
