# config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _default_db_url(data_dir: Path) -> str:
    return f"sqlite:///{(data_dir / 'worktime.db').as_posix()}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    data_dir: Path
    timezone: str = "Europe/Berlin"
    log_level: str = "INFO"
    usp_total_hours: int = 150
    usp_settled_before_year: int = 2026
    holiday_provider: str = "fixed"        # "fixed" | "regional"
    holiday_subdivision: str = "NW"
    live_refresh_seconds: int = 60
    long_break_warning_minutes: int = 35


def load_settings() -> Settings:
    """Builds the settings from the environment (a local .env file is honoured)."""
    load_dotenv()
    data_dir = Path(os.getenv("DATA_DIR", str(Path.cwd() / "data")))
    return Settings(
        database_url=os.getenv("DATABASE_URL", _default_db_url(data_dir)),
        data_dir=data_dir,
        timezone=os.getenv("APP_TIMEZONE", "Europe/Berlin"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        usp_total_hours=_env_int("USP_TOTAL_HOURS", 150),
        usp_settled_before_year=_env_int("USP_SETTLED_BEFORE_YEAR", 2026),
        holiday_provider=os.getenv("HOLIDAY_PROVIDER", "fixed").lower(),
        holiday_subdivision=os.getenv("HOLIDAY_SUBDIVISION", "NW"),
        live_refresh_seconds=_env_int("LIVE_REFRESH_SECONDS", 60),
        long_break_warning_minutes=_env_int("LONG_BREAK_WARNING_MINUTES", 35),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


__all__ = ["Settings", "load_settings", "configure_logging"]
