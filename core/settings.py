"""Runtime settings.

Reads configuration from environment variables (and a local .env file when
present):
- GRAIN_LOG_LEVEL: Logging level name (default "INFO")
- GRAIN_LOG_JSON: "1"/"true" for JSON log lines (default human-readable)
- GRAIN_MOISTURE_TABLES_PATH: Override for the shipped moisture tables JSON
- GRAIN_AMOUNT_THRESHOLD: Contract amount mismatch threshold in ARS (default 100000)
- GRAIN_FINAL_DUE_DAYS: Days a partial settlement may wait for its final (default 30)
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MOISTURE_TABLES_PATH = (
    Path(__file__).resolve().parents[1] / "quality_engine" / "data" / "moisture_tables.json"
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_env_file(env_path: Optional[Path] = None) -> None:
    """Load a .env file if it exists (repo root by default)."""
    env_path = env_path or Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one process."""
    log_level: str = "INFO"
    log_json: bool = False
    moisture_tables_path: Path = DEFAULT_MOISTURE_TABLES_PATH
    amount_threshold: Decimal = Decimal("100000")
    final_due_days: int = 30

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Settings":
        """Build settings from the environment.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        load_env_file(env_path)

        tables_path = os.getenv("GRAIN_MOISTURE_TABLES_PATH")

        raw_threshold = os.getenv("GRAIN_AMOUNT_THRESHOLD", "100000")
        try:
            amount_threshold = Decimal(raw_threshold)
        except InvalidOperation:
            raise ValueError(
                f"GRAIN_AMOUNT_THRESHOLD must be a number, got {raw_threshold!r}"
            )

        raw_days = os.getenv("GRAIN_FINAL_DUE_DAYS", "30")
        if not raw_days.strip().isdigit():
            raise ValueError(
                f"GRAIN_FINAL_DUE_DAYS must be a whole number of days, got {raw_days!r}"
            )

        return cls(
            log_level=os.getenv("GRAIN_LOG_LEVEL", "INFO"),
            log_json=os.getenv("GRAIN_LOG_JSON", "").strip().lower() in _TRUE_VALUES,
            moisture_tables_path=Path(tables_path) if tables_path else DEFAULT_MOISTURE_TABLES_PATH,
            amount_threshold=amount_threshold,
            final_due_days=int(raw_days),
        )
