"""
Runtime configuration read from the environment.

All values have defaults matching the backup share layout, so the service
starts without any environment set.
"""

from dataclasses import dataclass
from pathlib import Path
import os

DEFAULT_DATA_ROOT = "/mnt"
DEFAULT_TRENDS_FILE = "/mnt/capacity_planning/weekly_summaries/historical_trends.csv"
DEFAULT_PRICING_FILE = "pricing.csv"
DEFAULT_FAMILY_FILE = "instance_families.csv"


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    data_root: Path = Path(DEFAULT_DATA_ROOT)
    trends_file: Path = Path(DEFAULT_TRENDS_FILE)
    pricing_file: Path = Path(DEFAULT_PRICING_FILE)
    family_file: Path = Path(DEFAULT_FAMILY_FILE)
    analysis_days: int = 7
    stale_days: int = 7
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8081

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from ``CAPACITY_*``, ``LOG_LEVEL`` and ``ML_SIDECAR_*`` variables.

        Raises:
            ValueError: a numeric variable is not a valid integer
        """
        return cls(
            data_root=Path(os.getenv("CAPACITY_DATA_ROOT", DEFAULT_DATA_ROOT)),
            trends_file=Path(os.getenv("CAPACITY_TRENDS_FILE", DEFAULT_TRENDS_FILE)),
            pricing_file=Path(os.getenv("CAPACITY_PRICING_FILE", DEFAULT_PRICING_FILE)),
            family_file=Path(os.getenv("CAPACITY_FAMILY_FILE", DEFAULT_FAMILY_FILE)),
            analysis_days=_int_env("CAPACITY_ANALYSIS_DAYS", 7, minimum=1),
            stale_days=_int_env("CAPACITY_STALE_DAYS", 7),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("ML_SIDECAR_HOST", "0.0.0.0"),
            port=_int_env("ML_SIDECAR_PORT", 8081, minimum=1),
        )
