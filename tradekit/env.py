from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv


def _to_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "on"}


def _to_int(v: str | None, default: int) -> int:
    try:
        return int(float(v)) if v is not None else default
    except ValueError:
        return default


@dataclass
class EnvConfig:
    # credentials
    KRAKEN_API_KEY: str | None = None
    KRAKEN_API_SECRET: str | None = None
    KRAKEN_OTP: str | None = None

    # network
    KRAKEN_BASE_URL: str = "https://api.kraken.com"
    KRAKEN_HTTP_TIMEOUT_MS: int = 20000
    KRAKEN_RATE_LIMIT: bool = True

    # ops
    TRADEKIT_CONFIG: str | None = None
    TRADEKIT_LOG_LEVEL: str = "WARNING"

    def as_dict(self) -> dict[str, Any]:
        """Env values with secrets masked, safe to print."""
        return {
            "KRAKEN_API_KEY": "***" if self.KRAKEN_API_KEY else None,
            "KRAKEN_API_SECRET": "***" if self.KRAKEN_API_SECRET else None,
            "KRAKEN_OTP": "***" if self.KRAKEN_OTP else None,
            "KRAKEN_BASE_URL": self.KRAKEN_BASE_URL,
            "KRAKEN_HTTP_TIMEOUT_MS": self.KRAKEN_HTTP_TIMEOUT_MS,
            "KRAKEN_RATE_LIMIT": self.KRAKEN_RATE_LIMIT,
            "TRADEKIT_CONFIG": self.TRADEKIT_CONFIG,
            "TRADEKIT_LOG_LEVEL": self.TRADEKIT_LOG_LEVEL,
        }


def load_env(dotenv: bool = True, path: Path | None = None) -> EnvConfig:
    """Load .env into process env and return parsed EnvConfig.

    Variables already present in the process environment win over .env values.
    """
    if dotenv:
        load_dotenv(dotenv_path=str(path) if path else None)

    return EnvConfig(
        KRAKEN_API_KEY=os.getenv("KRAKEN_API_KEY") or None,
        KRAKEN_API_SECRET=os.getenv("KRAKEN_API_SECRET") or None,
        KRAKEN_OTP=os.getenv("KRAKEN_OTP") or None,
        KRAKEN_BASE_URL=os.getenv("KRAKEN_BASE_URL", "https://api.kraken.com").strip(),
        KRAKEN_HTTP_TIMEOUT_MS=_to_int(os.getenv("KRAKEN_HTTP_TIMEOUT_MS"), 20000),
        KRAKEN_RATE_LIMIT=_to_bool(os.getenv("KRAKEN_RATE_LIMIT"), True),
        TRADEKIT_CONFIG=os.getenv("TRADEKIT_CONFIG") or None,
        TRADEKIT_LOG_LEVEL=os.getenv("TRADEKIT_LOG_LEVEL", "WARNING").upper(),
    )
