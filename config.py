import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        upload_dir: Path,
        max_upload_bytes: int,
        reminder_days: int,
        enable_scheduler: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.upload_dir = upload_dir
        self.max_upload_bytes = max_upload_bytes
        self.reminder_days = reminder_days
        self.enable_scheduler = enable_scheduler


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    secret_key = os.getenv(
        "FINANCE_SECRET_KEY",
        "3f1c9a2e7b5d48c6a0e9f7d2b4c81a6e5d3f0b9c7a2e4d6f8b1c3a5e7d9f0b2c",
    )
    token_max_age_hours = int(os.getenv("FINANCE_TOKEN_MAX_AGE_HOURS", "24"))
    upload_dir = Path(
        os.getenv("FINANCE_UPLOAD_DIR", str(data_dir / "uploads"))
    ).resolve()
    max_upload_bytes = int(os.getenv("FINANCE_MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
    reminder_days = int(os.getenv("FINANCE_REMINDER_DAYS", "3"))
    enable_scheduler = _env_flag("FINANCE_ENABLE_SCHEDULER", True)
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        upload_dir=upload_dir,
        max_upload_bytes=max_upload_bytes,
        reminder_days=reminder_days,
        enable_scheduler=enable_scheduler,
    )
