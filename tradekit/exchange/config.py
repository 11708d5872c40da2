from __future__ import annotations

"""
Exchange Configuration Management
=================================

Single source of truth for exchange configuration:
- Credentials from explicit values or environment variables
- Exchange-specific defaults (endpoint, timeouts, rate limits)
- YAML persistence (secrets are never written to disk)
- Factory building a ready market client from a configuration
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from tradekit.exchange.common import AbstractMarket, ConfigurationError, HttpClient, TokenBucket
from tradekit.exchange.http import RequestsHttpClient
from tradekit.exchange.kraken import KrakenExchange

logger = logging.getLogger(__name__)


class ExchangeType(str, Enum):
    """Supported exchange types."""

    KRAKEN = "kraken"


@dataclass
class ExchangeCredentials:
    """Exchange API credentials."""

    api_key: str
    api_secret: str
    otp: Optional[str] = None

    @classmethod
    def from_env(cls, exchange_name: str) -> "ExchangeCredentials":
        """Load credentials from <NAME>_API_KEY / <NAME>_API_SECRET / <NAME>_OTP."""
        prefix = exchange_name.upper()
        return cls(
            api_key=os.getenv(f"{prefix}_API_KEY", ""),
            api_secret=os.getenv(f"{prefix}_API_SECRET", ""),
            otp=os.getenv(f"{prefix}_OTP") or None,
        )


@dataclass
class ExchangeSettings:
    """Exchange-specific settings."""

    type: ExchangeType
    base_url: str
    api_version: str
    timeout_ms: int
    enable_rate_limit: bool
    rate_limit_capacity: int
    rate_limit_refill_per_s: float
    symbols_ttl_s: float

    @classmethod
    def get_defaults(cls, exchange_type: ExchangeType) -> "ExchangeSettings":
        """Get default settings for exchange type."""
        defaults = {
            ExchangeType.KRAKEN: {
                "base_url": "https://api.kraken.com",
                "api_version": "0",
                "timeout_ms": 20000,
                "enable_rate_limit": True,
                # starter tier: 15 call counter, decays 0.33/s
                "rate_limit_capacity": 15,
                "rate_limit_refill_per_s": 0.33,
                "symbols_ttl_s": 300.0,
            },
        }
        return cls(type=exchange_type, **defaults[exchange_type])


@dataclass
class ExchangeConfig:
    """Complete exchange configuration."""

    name: str
    credentials: ExchangeCredentials
    settings: ExchangeSettings
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        name: str,
        exchange_type: ExchangeType,
        api_key: str = "",
        api_secret: str = "",
        otp: Optional[str] = None,
        **overrides,
    ) -> "ExchangeConfig":
        """Create a complete exchange configuration."""
        if not api_key or not api_secret:
            credentials = ExchangeCredentials.from_env(name)
        else:
            credentials = ExchangeCredentials(api_key=api_key, api_secret=api_secret, otp=otp)

        settings = ExchangeSettings.get_defaults(exchange_type)
        for key, value in overrides.items():
            if hasattr(settings, key) and value is not None:
                setattr(settings, key, value)
            elif not hasattr(settings, key):
                logger.warning(f"Ignoring unknown setting {key} for {name}")

        metadata = {
            "version": "1.0",
            "description": f"{name} exchange configuration",
        }
        return cls(name=name, credentials=credentials, settings=settings, metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; credentials are left out and come from the environment."""
        settings = asdict(self.settings)
        settings["type"] = self.settings.type.value
        return {
            "name": self.name,
            "settings": settings,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExchangeConfig":
        """Create from dictionary; missing settings fall back to the exchange defaults."""
        settings_data = dict(data.get("settings") or {})
        exchange_type = ExchangeType(settings_data.pop("type", data["name"]))
        settings = ExchangeSettings.get_defaults(exchange_type)
        for key, value in settings_data.items():
            if hasattr(settings, key):
                setattr(settings, key, value)
        return cls(
            name=data["name"],
            credentials=ExchangeCredentials.from_env(data["name"]),
            settings=settings,
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "ExchangeConfig":
        with Path(path).open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"YAML root must be a mapping: {path}")
        return cls.from_dict(data)

    def is_valid(self) -> bool:
        """Validate configuration."""
        if not self.name:
            return False
        if not self.settings.base_url.startswith("https://"):
            return False
        if self.settings.timeout_ms <= 0:
            return False
        if self.settings.enable_rate_limit and self.settings.rate_limit_capacity <= 0:
            return False
        return True

    def has_credentials(self) -> bool:
        return bool(self.credentials.api_key and self.credentials.api_secret)

    def get_summary(self) -> str:
        """Get configuration summary."""
        return (
            f"Exchange: {self.name} ({self.settings.type.value})\n"
            f"Endpoint: {self.settings.base_url}/{self.settings.api_version}\n"
            f"Credentials: {'set' if self.has_credentials() else 'missing'}\n"
            f"Rate limit: {'on' if self.settings.enable_rate_limit else 'off'}\n"
            f"Timeout: {self.settings.timeout_ms}ms"
        )

    def create_market(self, http: Optional[HttpClient] = None) -> AbstractMarket:
        return create_market(self, http)


class ExchangeConfigManager:
    """Manager for exchange configurations stored as YAML files."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = config_dir or Path("configs/exchanges")
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._configs: Dict[str, ExchangeConfig] = {}
        self._load_configs()

    def _load_configs(self):
        """Load all configurations from disk."""
        for config_file in sorted(self.config_dir.glob("*.yaml")):
            try:
                config = ExchangeConfig.from_yaml(config_file)
            except (OSError, ValueError, KeyError, yaml.YAMLError, ConfigurationError) as e:
                logger.warning(f"Failed to load config {config_file}: {e}")
                continue
            self._configs[config.name] = config
            logger.info(f"Loaded config for {config.name}")

    def _save_config(self, config: ExchangeConfig):
        """Save configuration to disk."""
        config_file = self.config_dir / f"{config.name}.yaml"
        with open(config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, sort_keys=False)
        logger.info(f"Saved config for {config.name}")

    def create_config(
        self,
        name: str,
        exchange_type: ExchangeType,
        api_key: str = "",
        api_secret: str = "",
        **overrides,
    ) -> ExchangeConfig:
        """Create and store a new configuration."""
        config = ExchangeConfig.create(name, exchange_type, api_key, api_secret, **overrides)
        if not config.is_valid():
            raise ConfigurationError(f"Invalid configuration for {name}")
        self._configs[name] = config
        self._save_config(config)
        return config

    def get_config(self, name: str) -> Optional[ExchangeConfig]:
        """Get configuration by name."""
        return self._configs.get(name)

    def list_configs(self) -> List[str]:
        """List all configuration names."""
        return list(self._configs.keys())

    def delete_config(self, name: str) -> bool:
        """Delete configuration."""
        if name not in self._configs:
            return False
        (self.config_dir / f"{name}.yaml").unlink(missing_ok=True)
        del self._configs[name]
        logger.info(f"Deleted config for {name}")
        return True


def create_market(config: ExchangeConfig, http: Optional[HttpClient] = None) -> AbstractMarket:
    """Build the market client described by `config`.

    Without an explicit `http`, a requests-based client with the configured
    timeout is used.
    """
    if not config.is_valid():
        raise ConfigurationError(f"Invalid configuration for {config.name}")
    settings = config.settings
    if http is None:
        http = RequestsHttpClient(timeout_ms=settings.timeout_ms)
    limiter = None
    if settings.enable_rate_limit:
        limiter = TokenBucket(
            capacity=settings.rate_limit_capacity,
            refill_rate=settings.rate_limit_refill_per_s,
        )
    if settings.type == ExchangeType.KRAKEN:
        market = KrakenExchange(
            api_key=config.credentials.api_key,
            api_secret=config.credentials.api_secret,
            otp=config.credentials.otp,
            http=http,
            base_url=settings.base_url,
            version=settings.api_version,
            rate_limiter=limiter,
            symbols_ttl_s=settings.symbols_ttl_s,
        )
    else:
        raise ConfigurationError(f"Unsupported exchange type: {settings.type}")
    logger.info(f"Created {settings.type.value} market client ({config.name})")
    return market


__all__ = [
    "ExchangeType",
    "ExchangeCredentials",
    "ExchangeSettings",
    "ExchangeConfig",
    "ExchangeConfigManager",
    "create_market",
]
