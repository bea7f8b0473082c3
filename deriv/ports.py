"""
Deriv Application Ports (Interfaces)
------------------------------------

This file defines the abstract interfaces (Ports) that the
Tool-call Dispatcher and the entry point interact with.

Consumers should only depend on these protocols,
not on the concrete websocket implementations.

None of the repository or execution methods raise: failures are
returned as an empty list, None, or a result with `success=False`.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol

from .domain import (
    AccountInfo,
    Position,
    MT5Account,
    MT5Position,
    MT5Symbol,
    TradeResult,
    MT5TradeResult
)


# --- Session Port ---

class ITradingSession(Protocol):
    """Correlated request/reply over one persistent connection."""

    @property
    def connected(self) -> bool:
        ...

    async def send_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Sends a request and returns the reply tagged with the same req_id."""
        ...

    async def authorize(self) -> Dict[str, Any]:
        """Authorizes with the session's own credential and returns the reply."""
        ...

    def on_message(self, handler: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        """Subscribes to every inbound frame. Returns an unsubscribe callable."""
        ...


# --- Account Data Port ---

class IAccountDataRepository(Protocol):
    """Interface for read-only account and market queries."""

    async def get_account_info(self) -> Optional[AccountInfo]:
        ...

    async def get_open_positions(self) -> List[Position]:
        ...

    async def get_available_symbols(self) -> List[str]:
        ...

    async def get_symbol_price(self, symbol: str) -> Optional[float]:
        """One-shot tick query; does not subscribe to the price stream."""
        ...

    async def get_transaction_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        ...

    async def get_profit_table(self, limit: int = 50) -> List[Dict[str, Any]]:
        ...

    async def get_mt5_accounts(self) -> List[MT5Account]:
        ...

    async def get_mt5_account_info(self, login: str) -> Optional[MT5Account]:
        ...

    async def get_mt5_symbols(self, login: str) -> List[MT5Symbol]:
        ...

    async def get_mt5_open_positions(self, login: str) -> List[MT5Position]:
        ...

    async def get_mt5_trade_history(self, login: str, days: int = 30) -> List[Dict[str, Any]]:
        ...


# --- Trade Execution Port ---

class ITradeExecutionService(Protocol):
    """Interface for contract and MT5 order execution."""

    async def buy_contract(self,
                           symbol: str,
                           contract_type: str,
                           amount: float,
                           duration: int,
                           duration_unit: str,
                           basis: str = "stake",
                           barrier: Optional[str] = None) -> TradeResult:
        """Requests a proposal, then buys it with `amount` as the price ceiling."""
        ...

    async def sell_contract(self, contract_id: str, price: Optional[float] = None) -> TradeResult:
        """Sells a contract. A price of 0 (or None) sells at market."""
        ...

    async def mt5_new_order(self,
                            login: str,
                            symbol: str,
                            volume: float,
                            action: str,
                            order_type: str = "market",
                            price: Optional[float] = None,
                            stop_loss: Optional[float] = None,
                            take_profit: Optional[float] = None,
                            comment: Optional[str] = None) -> MT5TradeResult:
        ...

    async def mt5_close_position(self,
                                 login: str,
                                 ticket: Optional[int] = None,
                                 volume: Optional[float] = None) -> MT5TradeResult:
        """Closes a position; `volume` closes it partially."""
        ...

    async def mt5_modify_position(self,
                                  login: str,
                                  ticket: Optional[int] = None,
                                  stop_loss: Optional[float] = None,
                                  take_profit: Optional[float] = None) -> MT5TradeResult:
        """Updates only the stop loss / take profit values that are given."""
        ...
