import os

from .rules import SHEET_EXPORT_URL, STRATEGY_HEADER, STRATEGY_POSITIONAL

# Basic settings helper to read environment configuration.

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    try:
        return float(val)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.SHEET_URL: str = os.getenv("TURISMO_SHEET_URL") or SHEET_EXPORT_URL
        self.CORS_PROXY: str = os.getenv("TURISMO_CORS_PROXY", "")
        self.REFRESH_INTERVAL: float = _as_float(os.getenv("TURISMO_REFRESH_INTERVAL"), 5.0)
        self.FETCH_TIMEOUT: float = _as_float(os.getenv("TURISMO_FETCH_TIMEOUT"), 10.0)
        self.REFRESH_ON_STARTUP: bool = _as_bool(os.getenv("TURISMO_REFRESH_ON_STARTUP"), True)
        level = os.getenv("TURISMO_LOG_LEVEL", "INFO").strip().upper()
        if level not in LOG_LEVELS:
            level = "INFO"
        self.LOG_LEVEL: str = level
        self.LEGACY_DIR: str = os.getenv("TURISMO_LEGACY_DIR", "")

        strategy = os.getenv("TURISMO_COLUMN_STRATEGY", STRATEGY_POSITIONAL).strip().lower()
        if strategy not in (STRATEGY_POSITIONAL, STRATEGY_HEADER):
            strategy = STRATEGY_POSITIONAL
        self.COLUMN_STRATEGY: str = strategy

    @property
    def source_url(self) -> str:
        """Sheet URL, routed through the CORS relay when one is configured."""
        if self.CORS_PROXY:
            return f"{self.CORS_PROXY}{self.SHEET_URL}"
        return self.SHEET_URL


settings = Settings()
