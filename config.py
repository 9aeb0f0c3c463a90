import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        cookie_secure: bool,
        report_rows_per_page: int,
        report_max_rows: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.cookie_secure = cookie_secure
        self.report_rows_per_page = report_rows_per_page
        self.report_max_rows = report_max_rows
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("DOMPETKU_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "dompetku.db"
    database_url = os.getenv("DOMPETKU_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("DOMPETKU_TIMEZONE", "Asia/Jakarta")
    session_secret = os.getenv(
        "DOMPETKU_SESSION_SECRET",
        "5f0c1e7b9a3d4e2f8c6b1a0d9e8f7c6b5a4d3e2f1c0b9a8d7e6f5c4b3a2d1e0f",
    )
    session_max_age_hours = int(os.getenv("DOMPETKU_SESSION_MAX_AGE_HOURS", "168"))
    cookie_secure = _env_flag("DOMPETKU_COOKIE_SECURE")
    report_rows_per_page = int(os.getenv("DOMPETKU_REPORT_ROWS_PER_PAGE", "28"))
    report_max_rows = int(os.getenv("DOMPETKU_REPORT_MAX_ROWS", "5000"))
    log_level = os.getenv("DOMPETKU_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        cookie_secure=cookie_secure,
        report_rows_per_page=report_rows_per_page,
        report_max_rows=report_max_rows,
        log_level=log_level,
    )
