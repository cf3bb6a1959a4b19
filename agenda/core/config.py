import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None

    # Plans
    DEFAULT_PLAN_ID: Optional[int] = None
    PLAN_STALE_SECONDS: int = 300  # 5 minutes

    # Client
    API_BASE_URL: str = "http://localhost:8000"
    PLAN_INFO_PATH: str = "/api/company/plan-info"
    APPOINTMENTS_PATH: str = "/api/company/appointments"
    EVENTS_PATH: str = "/api/events"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Live updates (server-sent events)
    SSE_RETRY_MS: int = 3000
    SSE_KEEPALIVE_SECONDS: float = 15.0
    SSE_QUEUE_MAX: int = 100

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def config_problems(cfg: Settings) -> List[str]:
    problems = []
    if not cfg.DATABASE_URL:
        problems.append("Missing required configuration: DATABASE_URL")
    if cfg.PLAN_STALE_SECONDS <= 0:
        problems.append("PLAN_STALE_SECONDS must be positive")
    if cfg.SSE_QUEUE_MAX <= 0:
        problems.append("SSE_QUEUE_MAX must be positive")
    return problems


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Check configuration at startup.

    Strict mode raises RuntimeError on the first problem; otherwise each
    problem is logged as a warning. Values are never logged, only key names.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("agenda")
    strict_mode = cfg.CONFIG_STRICT if strict is None else strict

    for problem in config_problems(cfg):
        if strict_mode:
            raise RuntimeError(problem)
        log.warning(problem)
    return True
