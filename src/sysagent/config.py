"""Centralized settings loaded from environment variables (+ optional .env).

One Settings object for the whole service. No secrets are required at import
time: tasks that need a credential fail their job when it is missing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "SYSAGENT"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # ---- Storage / logging ----
    db_path: str = ".local/sysagent/sysagent.sqlite3"
    log_level: str = "INFO"
    log_dir: Path | None = None

    # ---- Scheduler ----
    poll_interval: float = 1.0
    max_concurrent: int = 4
    claim_max_age: float = 86400.0

    # ---- Retry defaults ----
    default_retry_delay: int = 10
    default_max_attempts: int = 24

    # ---- HTTP ----
    http_timeout: float = 30.0

    # ---- Image generation (Replicate) ----
    replicate_api_key: str = ""
    image_default_model: str = "google/imagen-4-fast"
    image_default_aspect_ratio: str = "3:4"

    # ---- LLM (OpenAI-compatible) ----
    llm_api_key: str = ""
    llm_base_url: str = ""
    llm_model: str = ""

    # ---- GitHub ----
    github_pat: str = ""
    github_default_repo: str = ""

    # ---- WordPress site ----
    wp_base_url: str = ""
    wp_username: str = ""
    wp_app_password: str = ""


def load_settings() -> Settings:
    """Read settings from the environment, loading .env first if present."""
    load_dotenv(find_dotenv(usecwd=True), override=False)

    log_dir_raw = _env(_k("LOG_DIR")).strip()

    return Settings(
        db_path=_env(_k("DB_PATH"), Settings.db_path),
        log_level=_env(_k("LOG_LEVEL"), "INFO").upper(),
        log_dir=Path(log_dir_raw).expanduser() if log_dir_raw else None,
        poll_interval=_env_float(_k("POLL_INTERVAL"), 1.0),
        max_concurrent=_env_int(_k("MAX_CONCURRENT"), 4),
        claim_max_age=_env_float(_k("CLAIM_MAX_AGE"), 86400.0),
        default_retry_delay=_env_int(_k("DEFAULT_RETRY_DELAY"), 10),
        default_max_attempts=_env_int(_k("DEFAULT_MAX_ATTEMPTS"), 24),
        http_timeout=_env_float(_k("HTTP_TIMEOUT"), 30.0),
        replicate_api_key=_env(_k("REPLICATE_API_KEY")).strip(),
        image_default_model=_env(_k("IMAGE_DEFAULT_MODEL"), Settings.image_default_model).strip(),
        image_default_aspect_ratio=_env(
            _k("IMAGE_DEFAULT_ASPECT_RATIO"), Settings.image_default_aspect_ratio
        ).strip(),
        llm_api_key=_env(_k("LLM_API_KEY")).strip(),
        llm_base_url=_env(_k("LLM_BASE_URL")).strip(),
        llm_model=_env(_k("LLM_MODEL")).strip(),
        github_pat=_env(_k("GITHUB_PAT")).strip(),
        github_default_repo=_env(_k("GITHUB_DEFAULT_REPO")).strip(),
        wp_base_url=_env(_k("WP_BASE_URL")).strip().rstrip("/"),
        wp_username=_env(_k("WP_USERNAME")).strip(),
        wp_app_password=_env(_k("WP_APP_PASSWORD")).strip(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
