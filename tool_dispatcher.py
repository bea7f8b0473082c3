"""
tool_dispatcher.py
Maps tool calls issued by the realtime speech model onto trading
session operations and returns JSON-ready results.

The dispatcher is the boundary the voice assistant talks to. It never
raises: unknown tools, bad arguments and an unconfigured trading
service all come back as {"error": "..."}.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from deriv import TradingSession

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "Trading service unavailable: DERIV_API_TOKEN not configured"


def _schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "object", "properties": properties or {}, "required": required or []}


_LOGIN = {"type": "string", "description": "MT5 account login id"}
_TICKET = {"type": "integer", "description": "MT5 position ticket"}
_LIMIT = {"type": "integer", "description": "Maximum number of records (default 50)"}

TOOL_DECLARATIONS: List[Dict[str, Any]] = [
    {"name": "get_account_info",
     "description": "Get the Deriv account balance, currency and login id.",
     "parameters": _schema()},
    {"name": "get_open_positions",
     "description": "List open binary-option contracts.",
     "parameters": _schema()},
    {"name": "get_available_symbols",
     "description": "List tradable symbol codes.",
     "parameters": _schema()},
    {"name": "get_symbol_price",
     "description": "Get the latest quote for a symbol, e.g. R_100.",
     "parameters": _schema({"symbol": {"type": "string"}}, ["symbol"])},
    {"name": "buy_contract",
     "description": "Buy a binary-option contract at the current proposal price.",
     "parameters": _schema({
         "symbol": {"type": "string"},
         "contract_type": {"type": "string", "description": "CALL, PUT, DIGITOVER, ..."},
         "amount": {"type": "number", "description": "Stake in account currency"},
         "duration": {"type": "integer"},
         "duration_unit": {"type": "string", "enum": ["s", "m", "h", "d", "t"]},
         "basis": {"type": "string", "enum": ["stake", "payout"]},
         "barrier": {"type": "string"},
     }, ["symbol", "contract_type", "amount", "duration", "duration_unit"])},
    {"name": "sell_contract",
     "description": "Sell an open contract. Price 0 sells at market.",
     "parameters": _schema({"contract_id": {"type": "string"}, "price": {"type": "number"}}, ["contract_id"])},
    {"name": "get_transaction_history",
     "description": "Recent account statement entries.",
     "parameters": _schema({"limit": _LIMIT})},
    {"name": "get_profit_table",
     "description": "Recent closed contracts with profit, newest first.",
     "parameters": _schema({"limit": _LIMIT})},
    {"name": "get_mt5_accounts",
     "description": "List the MT5 accounts linked to this login.",
     "parameters": _schema()},
    {"name": "get_mt5_account_info",
     "description": "Get settings and balance of one MT5 account.",
     "parameters": _schema({"login": _LOGIN}, ["login"])},
    {"name": "get_mt5_symbols",
     "description": "List instruments tradable on MT5.",
     "parameters": _schema({"login": _LOGIN}, ["login"])},
    {"name": "get_mt5_open_positions",
     "description": "List open positions on an MT5 account.",
     "parameters": _schema({"login": _LOGIN}, ["login"])},
    {"name": "get_mt5_trade_history",
     "description": "Deals on an MT5 account over the last N days.",
     "parameters": _schema({"login": _LOGIN, "days": {"type": "integer"}}, ["login"])},
    {"name": "mt5_new_order",
     "description": "Place an MT5 market, limit or stop order.",
     "parameters": _schema({
         "login": _LOGIN,
         "symbol": {"type": "string"},
         "volume": {"type": "number", "description": "Lots"},
         "action": {"type": "string", "enum": ["buy", "sell"]},
         "order_type": {"type": "string", "enum": ["market", "limit", "stop"]},
         "price": {"type": "number"},
         "stop_loss": {"type": "number"},
         "take_profit": {"type": "number"},
         "comment": {"type": "string"},
     }, ["login", "symbol", "volume", "action"])},
    {"name": "mt5_close_position",
     "description": "Close an MT5 position, fully or partially by volume.",
     "parameters": _schema({"login": _LOGIN, "ticket": _TICKET, "volume": {"type": "number"}},
                           ["login", "ticket"])},
    {"name": "mt5_modify_position",
     "description": "Change the stop loss and/or take profit of an MT5 position.",
     "parameters": _schema({"login": _LOGIN, "ticket": _TICKET,
                            "stop_loss": {"type": "number"}, "take_profit": {"type": "number"}},
                           ["login", "ticket"])},
    {"name": "get_connection_status",
     "description": "Whether the trading connection is currently open.",
     "parameters": _schema()},
]


def to_jsonable(value: Any) -> Any:
    """Converts value objects (and lists of them) to plain dicts."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


class ToolCallDispatcher:
    """
    Routes a tool name and its argument record to the matching
    trading operation.
    """

    def __init__(self, session: Optional[TradingSession]):
        self._session = session
        self._tools: Dict[str, Callable[..., Awaitable[Any]]] = {}
        if session is not None:
            accounts, trading = session.accounts, session.trading
            self._tools = {
                "get_account_info": accounts.get_account_info,
                "get_open_positions": accounts.get_open_positions,
                "get_available_symbols": accounts.get_available_symbols,
                "get_symbol_price": accounts.get_symbol_price,
                "get_transaction_history": accounts.get_transaction_history,
                "get_profit_table": accounts.get_profit_table,
                "get_mt5_accounts": accounts.get_mt5_accounts,
                "get_mt5_account_info": accounts.get_mt5_account_info,
                "get_mt5_symbols": accounts.get_mt5_symbols,
                "get_mt5_open_positions": accounts.get_mt5_open_positions,
                "get_mt5_trade_history": accounts.get_mt5_trade_history,
                "buy_contract": trading.buy_contract,
                "sell_contract": trading.sell_contract,
                "mt5_new_order": trading.mt5_new_order,
                "mt5_close_position": trading.mt5_close_position,
                "mt5_modify_position": trading.mt5_modify_position,
                "get_connection_status": self._connection_status,
            }

    @property
    def tool_names(self) -> List[str]:
        return [decl["name"] for decl in TOOL_DECLARATIONS]

    async def _connection_status(self) -> bool:
        return self._session is not None and self._session.connected

    async def dispatch(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Runs one tool call. Returns {"result": ...} or {"error": ...}."""
        args = args or {}
        if name not in self.tool_names:
            logger.warning(f"Unknown tool requested: {name}")
            return {"error": f"Unknown tool: {name}"}
        if self._session is None:
            return {"error": SERVICE_UNAVAILABLE}

        handler = self._tools[name]
        try:
            inspect.signature(handler).bind(**args)
        except TypeError as e:
            logger.warning(f"Bad arguments for tool {name}: {e}")
            return {"error": f"Invalid arguments for {name}: {e}"}

        try:
            logger.info(f"Dispatching tool call: {name}")
            result = await handler(**args)
        except Exception as e:
            logger.exception(f"Tool {name} failed: {e}")
            return {"error": str(e) or f"{name} failed"}

        return {"result": to_jsonable(result)}
