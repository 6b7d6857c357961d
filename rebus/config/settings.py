"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


def _load_env_file(path: str = ".env") -> None:
    """Populate os.environ from the provided .env file if it exists."""

    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_ORIGINS = ("http://localhost:5173", "http://localhost:3000")


@dataclass(frozen=True, slots=True)
class Settings:
    """Centralised project settings based on OS environment variables."""

    environment: str = "local"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./data/rebus.db"
    images_root: str = "storage/images"
    image_url_prefix: str = "/api/images"

    prompt_api_key: str = ""
    prompt_base_url: str = "https://api.anthropic.com/v1/"
    prompt_model: str = "claude-sonnet-4-20250514"
    prompt_max_tokens: int = 3000

    replicate_api_token: str = ""
    replicate_base_url: str = "https://api.replicate.com/v1"
    replicate_model: str = "black-forest-labs/flux-1.1-pro"
    image_width: int = 800
    image_height: int = 600
    render_poll_interval: float = 5.0
    render_poll_max_attempts: int = 60
    request_timeout: float = 120.0

    batch_job_hour: int = 6
    batch_job_minute: int = 0
    scheduler_enabled: bool = True

    allowed_origins: tuple[str, ...] = field(default=DEFAULT_ORIGINS)


def _build_settings() -> Settings:
    _load_env_file()

    origins = _split_csv(os.getenv("ALLOWED_ORIGINS", ""))
    return Settings(
        environment=os.getenv("ENVIRONMENT", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/rebus.db"),
        images_root=os.getenv("IMAGES_ROOT", "storage/images"),
        image_url_prefix=os.getenv("IMAGE_URL_PREFIX", "/api/images"),
        prompt_api_key=os.getenv("PROMPT_API_KEY", ""),
        prompt_base_url=os.getenv("PROMPT_BASE_URL", "https://api.anthropic.com/v1/"),
        prompt_model=os.getenv("PROMPT_MODEL", "claude-sonnet-4-20250514"),
        prompt_max_tokens=int(os.getenv("PROMPT_MAX_TOKENS", "3000")),
        replicate_api_token=os.getenv("REPLICATE_API_TOKEN", ""),
        replicate_base_url=os.getenv("REPLICATE_BASE_URL", "https://api.replicate.com/v1"),
        replicate_model=os.getenv("REPLICATE_MODEL", "black-forest-labs/flux-1.1-pro"),
        image_width=int(os.getenv("IMAGE_WIDTH", "800")),
        image_height=int(os.getenv("IMAGE_HEIGHT", "600")),
        render_poll_interval=float(os.getenv("RENDER_POLL_INTERVAL", "5")),
        render_poll_max_attempts=int(os.getenv("RENDER_POLL_MAX_ATTEMPTS", "60")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "120")),
        batch_job_hour=int(os.getenv("BATCH_JOB_HOUR", "6")),
        batch_job_minute=int(os.getenv("BATCH_JOB_MINUTE", "0")),
        scheduler_enabled=_as_bool(os.getenv("SCHEDULER_ENABLED", "true")),
        allowed_origins=DEFAULT_ORIGINS + origins,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance to avoid re-reading configuration."""

    return _build_settings()
