from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(REPO_ROOT / ".env")

TRUTHY = {"1", "true", "yes", "on"}
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    db_path: str
    secret_key: str
    access_token_expire_minutes: int
    crisis_webhook_url: Optional[str]
    crisis_webhook_timeout: float
    crisis_response_threshold: float
    gemini_api_key: Optional[str]
    gemini_model: str
    gemini_timeout: float
    log_level: str
    dev_mode: bool

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"


def resolve_db_path() -> str:
    db_env = (os.getenv("FITCARE_DB_PATH") or os.getenv("DB_PATH") or "").strip()
    db_path = Path(db_env) if db_env else (REPO_ROOT / "fitcare.db")
    if not db_path.is_absolute():
        db_path = REPO_ROOT / db_path
    return str(db_path)


def is_dev_mode() -> bool:
    value = os.getenv("FITCARE_DEV_MODE", "").strip().lower()
    alt = os.getenv("DEV_MODE", "").strip().lower()
    return value in TRUTHY or alt in TRUTHY


def optional_env(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


def float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number), using %s", name, raw, default)
        return default


def int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer), using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    return Settings(
        db_path=resolve_db_path(),
        secret_key=optional_env("FITCARE_SECRET_KEY") or "CHANGE_ME",
        access_token_expire_minutes=int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24),
        crisis_webhook_url=optional_env("CRISIS_WEBHOOK_URL"),
        crisis_webhook_timeout=float_env("CRISIS_WEBHOOK_TIMEOUT", 5.0),
        crisis_response_threshold=float_env("CRISIS_RESPONSE_THRESHOLD", 0.7),
        gemini_api_key=optional_env("GEMINI_API_KEY"),
        gemini_model=optional_env("GEMINI_MODEL") or "gemini-1.5-flash",
        gemini_timeout=float_env("GEMINI_TIMEOUT", 30.0),
        log_level=(optional_env("FITCARE_LOG_LEVEL") or optional_env("LOG_LEVEL") or "INFO").upper(),
        dev_mode=is_dev_mode(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
