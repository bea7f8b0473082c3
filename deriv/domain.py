"""
Deriv Domain Models
-------------------

This file defines the pure data classes (dataclasses) that represent
the core concepts of the trading domain.

These models are completely independent of the websocket transport
or any other infrastructure concern. They are the "nouns" of the system.
The gateway stays authoritative for all of this state; these objects are
snapshots projected from a single reply.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any


def _without_unset(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class AccountInfo:
    """Snapshot of the authorized Deriv account."""
    balance: float
    currency: str
    loginid: str
    account_type: str
    is_virtual: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Position:
    """An open binary-option contract from the portfolio."""
    contract_id: str
    symbol: str
    buy_price: float
    current_spot: Optional[float]
    profit: Optional[float]
    contract_type: str
    date_start: int             # epoch seconds
    date_expiry: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MT5Account:
    """An MT5 trading account linked to the Deriv login."""
    login: str
    balance: float
    leverage: float
    server: str
    account_type: str

    # Display metadata, not always present
    name: Optional[str] = None
    currency: Optional[str] = None
    display_balance: Optional[str] = None
    market_type: Optional[str] = None
    sub_account_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MT5Position:
    """Consolidated info about an open MT5 position."""
    position_id: str
    symbol: str
    volume: float
    price_open: float
    price_current: float
    profit: float
    type: str  # 'buy' or 'sell'
    time_open: int
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MT5Symbol:
    """An instrument tradable on MT5 accounts."""
    symbol: str
    display_name: str
    market: str
    market_type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TradeResult:
    """Outcome of a contract buy or sell."""
    success: bool
    contract_id: Optional[str] = None
    buy_price: Optional[float] = None
    sold_for: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "TradeResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return _without_unset(asdict(self))


@dataclass
class MT5TradeResult:
    """Outcome of an MT5 order, close or modify request."""
    success: bool
    order_id: Optional[str] = None
    ticket: Optional[int] = None
    price: Optional[float] = None
    volume: Optional[float] = None
    symbol: Optional[str] = None
    action: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "MT5TradeResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return _without_unset(asdict(self))
