"""
config.py
Centralized configuration for the voice assistant's trading back-end.

Loads settings from a .env file and the environment.
Separates configuration from application logic (SOLID's SRP).
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Load .env file ---
# Create a file named .env in the working directory and add your keys:
# DERIV_API_TOKEN=your-deriv-api-token
# DERIV_APP_ID=1089
# LOG_LEVEL=INFO
load_dotenv()


@dataclass(frozen=True)
class Config:
    """
    Holds all configuration for the application, loaded from environment variables.
    Values are read when the instance is created, not at import time.
    """
    # Deriv gateway. No token means the trading tools are unavailable.
    deriv_api_token: Optional[str] = field(default_factory=lambda: os.getenv("DERIV_API_TOKEN") or None)
    deriv_app_id: int = field(default_factory=lambda: int(os.getenv("DERIV_APP_ID", 1089)))
    deriv_ws_url: str = field(default_factory=lambda: os.getenv("DERIV_WS_URL", "wss://ws.derivws.com/websockets/v3"))
    deriv_currency: str = field(default_factory=lambda: os.getenv("DERIV_CURRENCY", "USD"))

    # Session behaviour
    request_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("DERIV_REQUEST_TIMEOUT", 30)))
    reconnect_base_delay_seconds: float = field(default_factory=lambda: float(os.getenv("DERIV_RECONNECT_BASE_DELAY", 3)))
    max_reconnect_attempts: int = field(default_factory=lambda: int(os.getenv("DERIV_MAX_RECONNECT_ATTEMPTS", 5)))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @property
    def trading_enabled(self) -> bool:
        return bool(self.deriv_api_token)


def load_config() -> Config:
    """Loads and validates the application configuration."""
    try:
        cfg = Config()
    except ValueError as e:
        raise ValueError(f"Invalid numeric setting in environment: {e}") from e

    if cfg.request_timeout_seconds <= 0:
        raise ValueError("DERIV_REQUEST_TIMEOUT must be positive")
    if cfg.reconnect_base_delay_seconds <= 0:
        raise ValueError("DERIV_RECONNECT_BASE_DELAY must be positive")
    if cfg.max_reconnect_attempts < 0:
        raise ValueError("DERIV_MAX_RECONNECT_ATTEMPTS must not be negative")
    if not cfg.deriv_ws_url.startswith(("ws://", "wss://")):
        raise ValueError("DERIV_WS_URL must be a ws:// or wss:// URL")

    # A missing token is a legitimate state, not a configuration error
    if not cfg.trading_enabled:
        logger.warning("DERIV_API_TOKEN not configured. Trading tools will be unavailable.")

    logger.info(f"Configuration loaded. Deriv app id: {cfg.deriv_app_id}, Trading enabled: {cfg.trading_enabled}")
    return cfg
