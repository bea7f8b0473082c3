"""
Deriv Trading Session Package
=============================

This package provides an asynchronous client for the Deriv websocket
API: one persistent connection, request/reply correlation by `req_id`,
automatic reconnection, and typed trading operations (binary-option
contracts and MT5 positions) on top of it.

It is structured using Domain-Driven Design (DDD) and Ports & Adapters
principles to separate domain logic from infrastructure concerns.

Package Structure:
------------------
- domain.py:      Pure data classes (account, positions, trade results).
- ports.py:       The abstract interfaces (Ports) for the session and services.
- connector.py:   Connection lifecycle, request correlation and reconnection.
- adapters.py:    Concrete implementations (Adapters) of the ports.
- factory.py:     Builds a caller-owned `TradingSession` from a token.
- utils.py:       Helpers for defensive reply parsing and payload building.

Public API:
-----------
This __init__.py file acts as a Facade, re-exporting the key
public components, e.g., `from deriv import create_trading_session`.
"""

import logging

# Set up a default null handler to avoid "No handler found" warnings
# if the consuming application doesn't configure logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Export Domain Models
from .domain import (
    AccountInfo,
    Position,
    MT5Account,
    MT5Position,
    MT5Symbol,
    TradeResult,
    MT5TradeResult
)

# Export Ports (Interfaces)
from .ports import (
    ITradingSession,
    IAccountDataRepository,
    ITradeExecutionService
)

# Export Connection Manager and Errors
from .connector import (
    DerivConnector,
    ConnectionState,
    DerivError,
    DerivAPIError,
    RequestTimeoutError,
    SessionClosedError
)

# Export Adapters (Concrete Implementations)
from .adapters import (
    DerivAccountRepository,
    DerivTradeExecutionService
)

# Export Factory
from .factory import TradingSession, create_trading_session


__all__ = [
    # Domain
    "AccountInfo",
    "Position",
    "MT5Account",
    "MT5Position",
    "MT5Symbol",
    "TradeResult",
    "MT5TradeResult",

    # Ports
    "ITradingSession",
    "IAccountDataRepository",
    "ITradeExecutionService",

    # Infrastructure & Services
    "DerivConnector",
    "ConnectionState",
    "DerivAccountRepository",
    "DerivTradeExecutionService",
    "TradingSession",
    "create_trading_session",

    # Errors
    "DerivError",
    "DerivAPIError",
    "RequestTimeoutError",
    "SessionClosedError",
]
