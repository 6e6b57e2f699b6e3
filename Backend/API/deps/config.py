import os
from dotenv import load_dotenv

from services.engine import EngineConfig

load_dotenv()


def _float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def _bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DB_DSN = os.getenv("DB_DSN")
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

STARTING_BALANCE = _float("STARTING_BALANCE", 1000.0)
RECOVERY_BALANCE = _float("RECOVERY_BALANCE", 100.0)
HISTORY_LIMIT = _int("HISTORY_LIMIT", 50)
TICK_INTERVAL_MS = _int("TICK_INTERVAL_MS", 50)
AUTO_TICK = _bool("AUTO_TICK", True)


def engine_config() -> EngineConfig:
    """Build the round engine tunables from the environment."""
    return EngineConfig(
        normal_mode_chance=_float("NORMAL_MODE_CHANCE", 0.9),
        orphan_base_chance=_float("ORPHAN_BASE_CHANCE", 0.001),
        orphan_max_chance=_float("ORPHAN_MAX_CHANCE", 0.95),
        difficulty_range=(_float("DIFFICULTY_MIN", 0.5), _float("DIFFICULTY_MAX", 3.0)),
        normal_max_multiplier=_float("NORMAL_MAX_MULTIPLIER", 2.5),
        hot_max_multiplier=_float("HOT_MAX_MULTIPLIER", 10.0),
        normal_progress_step=_float("NORMAL_PROGRESS_STEP", 0.2),
        hot_progress_step=_float("HOT_PROGRESS_STEP", 0.5),
    )
