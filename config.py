import os
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import make_url


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_hours: int,
        budget_workers: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.budget_workers = budget_workers


def is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (
        None,
        "",
        ":memory:",
    )


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Europe/Berlin")
    token_secret = os.getenv(
        "LEDGER_TOKEN_SECRET",
        "4f0d2b8c61e94a7f3c5b1d09e8a6f2734b9c0d1e5f6a7b8c9d0e1f2a3b4c5d6e",
    )
    token_max_age_hours = int(os.getenv("LEDGER_TOKEN_MAX_AGE_HOURS", "168"))
    budget_workers = max(1, int(os.getenv("LEDGER_BUDGET_WORKERS", "4")))
    if is_memory_sqlite(database_url):
        # one shared connection; lookups must not overlap
        budget_workers = 1
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        budget_workers=budget_workers,
    )
