"""SignalForge — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from signalforge.analysis.models import TIMEFRAMES


_REQUIRED_VARS = [
    "SIGNALFORGE_MARKET_DATA_URL",
]

_DEFAULT_TIMEFRAMES = ",".join(TIMEFRAMES.keys())


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    market_data_url: str
    symbols: tuple[str, ...]
    timeframes: tuple[str, ...]
    poll_interval_seconds: int
    candle_limit: int
    stale_after_bars: int
    penalty_per_weight: float
    demotion_floor: float
    accuracy_window: int
    max_leverage: int
    db_path: str
    log_level: str
    api_port: int


def _split(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse(var: str, default: str, cast):
    raw = os.environ.get(var, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {var}: '{raw}'") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the variable when a
    required variable is absent or a value cannot be used.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    symbols = _split(os.environ.get("SIGNALFORGE_SYMBOLS", "BTCUSDT"))
    if not symbols:
        raise ValueError("SIGNALFORGE_SYMBOLS must name at least one symbol")

    timeframes = _split(os.environ.get("SIGNALFORGE_TIMEFRAMES", _DEFAULT_TIMEFRAMES))
    unknown = [tf for tf in timeframes if tf not in TIMEFRAMES]
    if unknown or not timeframes:
        raise ValueError(
            f"Invalid value for SIGNALFORGE_TIMEFRAMES: unknown {', '.join(unknown) or '(empty)'}"
        )

    config = Config(
        market_data_url=os.environ["SIGNALFORGE_MARKET_DATA_URL"],
        symbols=symbols,
        timeframes=timeframes,
        poll_interval_seconds=_parse("SIGNALFORGE_POLL_INTERVAL_SECONDS", "180", int),
        candle_limit=_parse("SIGNALFORGE_CANDLE_LIMIT", "250", int),
        stale_after_bars=_parse("SIGNALFORGE_STALE_AFTER_BARS", "3", int),
        penalty_per_weight=_parse("SIGNALFORGE_PENALTY_PER_WEIGHT", "5.0", float),
        demotion_floor=_parse("SIGNALFORGE_DEMOTION_FLOOR", "35.0", float),
        accuracy_window=_parse("SIGNALFORGE_ACCURACY_WINDOW", "50", int),
        max_leverage=_parse("SIGNALFORGE_MAX_LEVERAGE", "5", int),
        db_path=os.environ.get("SIGNALFORGE_DB_PATH", "data/signalforge.db"),
        log_level=os.environ.get("SIGNALFORGE_LOG_LEVEL", "INFO"),
        api_port=_parse("SIGNALFORGE_API_PORT", "8080", int),
    )

    if config.poll_interval_seconds < 1:
        raise ValueError("SIGNALFORGE_POLL_INTERVAL_SECONDS must be at least 1")
    if config.max_leverage < 1:
        raise ValueError("SIGNALFORGE_MAX_LEVERAGE must be at least 1")
    if config.accuracy_window < 1:
        raise ValueError("SIGNALFORGE_ACCURACY_WINDOW must be at least 1")

    return config
