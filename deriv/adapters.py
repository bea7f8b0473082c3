"""
Deriv Infrastructure Adapters
-----------------------------

This file contains the concrete implementations (Adapters) of the
ports defined in `ports.py`.

These classes depend on a connected `ITradingSession` (normally the
`DerivConnector`). They are responsible for translating the application's
requests (e.g., `get_open_positions`) into specific gateway requests
and mapping the schema-less replies back to the application's domain models.

Every public method catches its own failures, logs them, and returns
the documented failure value instead of raising.
"""

import logging
from typing import Any, Dict, List, Optional

from .ports import IAccountDataRepository, ITradeExecutionService, ITradingSession
from .domain import (
    AccountInfo,
    Position,
    MT5Account,
    MT5Position,
    MT5Symbol,
    TradeResult,
    MT5TradeResult
)
from .utils import (
    as_float,
    as_int,
    as_str,
    days_back_range,
    drop_unset,
    error_message,
    first_present
)

logger = logging.getLogger(__name__)

CONTRACT_TYPES = frozenset({
    "CALL", "PUT",
    "DIGITOVER", "DIGITUNDER", "DIGITDIFF", "DIGITMATCH", "DIGITODD", "DIGITEVEN",
    "ONETOUCH", "NOTOUCH",
    "EXPIRYMISS", "EXPIRYRANGE",
})
DURATION_UNITS = frozenset({"s", "m", "h", "d", "t"})
CONTRACT_BASES = frozenset({"stake", "payout"})

MT5_ACTIONS = frozenset({"buy", "sell"})
MT5_ORDER_TYPES = frozenset({"market", "limit", "stop"})
MT5_SUBMARKETS = frozenset({"forex", "commodities", "stocks"})


def _mt5_account_from(raw: Dict[str, Any]) -> MT5Account:
    return MT5Account(
        login=as_str(raw.get("login")),
        balance=as_float(raw.get("balance")),
        leverage=as_float(raw.get("leverage")),
        server=as_str(raw.get("server")),
        account_type=as_str(raw.get("account_type")),
        name=raw.get("name"),
        currency=raw.get("currency"),
        display_balance=raw.get("display_balance"),
        market_type=raw.get("market_type"),
        sub_account_type=raw.get("sub_account_type")
    )


def _mt5_direction(raw_type: Any) -> str:
    # MT5 reports 0 for buy positions, 1 for sell
    if raw_type in (0, "0") or str(raw_type).lower() == "buy":
        return "buy"
    return "sell"


# --- Account Data Adapter ---

class DerivAccountRepository(IAccountDataRepository):
    """
    Concrete implementation that fetches account and market data from Deriv.
    """

    def __init__(self, session: ITradingSession):
        self._session = session

    async def get_account_info(self) -> Optional[AccountInfo]:
        """Merges a balance query and an authorize query into one snapshot."""
        try:
            response = await self._session.send_request({"balance": 1, "subscribe": 0})
            auth_response = await self._session.authorize()

            balance = response.get("balance") or {}
            auth = auth_response.get("authorize") or {}
            return AccountInfo(
                balance=as_float(balance.get("balance")),
                currency=balance.get("currency") or "USD",
                loginid=as_str(auth.get("loginid")),
                account_type=as_str(auth.get("account_type")),
                is_virtual=bool(auth.get("is_virtual", False))
            )
        except Exception as e:
            logger.error(f"Get Account Info Error: {e}")
            return None

    async def get_open_positions(self) -> List[Position]:
        """Maps the portfolio's contract list to positions. Never returns None."""
        try:
            response = await self._session.send_request({"portfolio": 1})
            contracts = (response.get("portfolio") or {}).get("contracts") or []

            positions = []
            for contract in contracts:
                positions.append(Position(
                    contract_id=as_str(contract.get("contract_id")),
                    symbol=as_str(contract.get("symbol")),
                    buy_price=as_float(contract.get("buy_price")),
                    current_spot=as_float(contract.get("current_spot"), None),
                    profit=as_float(contract.get("profit"), None),
                    contract_type=as_str(contract.get("contract_type")),
                    date_start=as_int(contract.get("date_start")),
                    date_expiry=as_int(contract.get("date_expiry"), None)
                ))
            return positions
        except Exception as e:
            logger.error(f"Get Positions Error: {e}")
            return []

    async def get_available_symbols(self) -> List[str]:
        try:
            response = await self._session.send_request({
                "active_symbols": "brief",
                "product_type": "basic"
            })
            return [s["symbol"] for s in response.get("active_symbols") or [] if s.get("symbol")]
        except Exception as e:
            logger.error(f"Get Symbols Error: {e}")
            return []

    async def get_symbol_price(self, symbol: str) -> Optional[float]:
        if not symbol:
            logger.warning("get_symbol_price called without a symbol.")
            return None
        try:
            response = await self._session.send_request({"ticks": symbol, "subscribe": 0})
            return as_float((response.get("tick") or {}).get("quote"), None)
        except Exception as e:
            logger.error(f"Get Price Error for {symbol}: {e}")
            return None

    async def get_transaction_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            response = await self._session.send_request({
                "statement": 1,
                "description": 1,
                "limit": limit
            })
            return (response.get("statement") or {}).get("transactions") or []
        except Exception as e:
            logger.error(f"Get Transaction History Error: {e}")
            return []

    async def get_profit_table(self, limit: int = 50) -> List[Dict[str, Any]]:
        try:
            response = await self._session.send_request({
                "profit_table": 1,
                "description": 1,
                "limit": limit,
                "sort": "DESC"
            })
            return (response.get("profit_table") or {}).get("transactions") or []
        except Exception as e:
            logger.error(f"Get Profit Table Error: {e}")
            return []

    # --- MT5 queries ---

    async def get_mt5_accounts(self) -> List[MT5Account]:
        try:
            response = await self._session.send_request({"mt5_login_list": 1})
            return [_mt5_account_from(raw) for raw in response.get("mt5_login_list") or []]
        except Exception as e:
            logger.error(f"Get MT5 Accounts Error: {e}")
            return []

    async def get_mt5_account_info(self, login: str) -> Optional[MT5Account]:
        if not login:
            logger.warning("get_mt5_account_info called without a login.")
            return None
        try:
            response = await self._session.send_request({"mt5_get_settings": 1, "login": login})
            settings = response.get("mt5_get_settings")
            if not settings:
                return None
            return _mt5_account_from(settings)
        except Exception as e:
            logger.error(f"Get MT5 Account Info Error: {e}")
            return None

    async def get_mt5_symbols(self, login: str) -> List[MT5Symbol]:
        """Active symbols tradable on MT5: synthetic indices, forex, commodities and stocks."""
        if not login:
            logger.warning("get_mt5_symbols called without a login.")
            return []
        try:
            response = await self._session.send_request({
                "active_symbols": "full",
                "product_type": "basic"
            })

            symbols = []
            for s in response.get("active_symbols") or []:
                if s.get("market_type_other") != "synthetic_index" and s.get("submarket") not in MT5_SUBMARKETS:
                    continue
                symbols.append(MT5Symbol(
                    symbol=as_str(s.get("symbol")),
                    display_name=as_str(s.get("display_name")),
                    market=as_str(s.get("market")),
                    market_type=as_str(s.get("market_type_other") or s.get("submarket"))
                ))
            return symbols
        except Exception as e:
            logger.error(f"Get MT5 Symbols Error: {e}")
            return []

    async def get_mt5_open_positions(self, login: str) -> List[MT5Position]:
        if not login:
            logger.warning("get_mt5_open_positions called without a login.")
            return []
        try:
            response = await self._session.send_request({"mt5_open_positions": 1, "login": login})

            positions = []
            for pos in response.get("mt5_open_positions") or []:
                positions.append(MT5Position(
                    position_id=as_str(first_present(pos, "position_id", "ticket")),
                    symbol=as_str(pos.get("symbol")),
                    volume=as_float(pos.get("volume")),
                    price_open=as_float(first_present(pos, "price_open", "open_price")),
                    price_current=as_float(first_present(pos, "price_current", "current_price")),
                    profit=as_float(pos.get("profit")),
                    type=_mt5_direction(pos.get("type")),
                    time_open=as_int(first_present(pos, "time_open", "open_time")),
                    stop_loss=as_float(pos.get("sl"), None),
                    take_profit=as_float(pos.get("tp"), None),
                    comment=pos.get("comment")
                ))
            return positions
        except Exception as e:
            logger.error(f"Get MT5 Open Positions Error: {e}")
            return []

    async def get_mt5_trade_history(self, login: str, days: int = 30) -> List[Dict[str, Any]]:
        if not login:
            logger.warning("get_mt5_trade_history called without a login.")
            return []
        try:
            from_ts, to_ts = days_back_range(days)
            response = await self._session.send_request({
                "mt5_deal_history": 1,
                "login": login,
                "from": from_ts,
                "to": to_ts
            })
            return response.get("mt5_deal_history") or []
        except Exception as e:
            logger.error(f"Get MT5 Trade History Error: {e}")
            return []


# --- Trade Execution Adapter ---

class DerivTradeExecutionService(ITradeExecutionService):
    """
    Concrete implementation for contract and MT5 trade execution.
    """

    def __init__(self, session: ITradingSession, currency: str = "USD"):
        self._session = session
        self._currency = currency

    async def buy_contract(self,
                           symbol: str,
                           contract_type: str,
                           amount: float,
                           duration: int,
                           duration_unit: str,
                           basis: str = "stake",
                           barrier: Optional[str] = None) -> TradeResult:
        """
        Two-phase buy: the gateway prices contracts dynamically, so a proposal
        is requested first and the buy accepts that proposal's id. The buy is
        never sent when the proposal fails.
        """
        amount = as_float(amount, None)
        duration = as_int(duration, None)
        invalid = self._validate_contract(symbol, contract_type, amount, duration, duration_unit, basis)
        if invalid:
            return TradeResult.failure(invalid)

        try:
            proposal_response = await self._session.send_request(drop_unset({
                "proposal": 1,
                "amount": amount,
                "basis": basis,
                "contract_type": contract_type,
                "currency": self._currency,
                "duration": duration,
                "duration_unit": duration_unit,
                "symbol": symbol,
                "barrier": barrier
            }))

            if proposal_response.get("error"):
                return TradeResult.failure(
                    (proposal_response["error"] or {}).get("message") or "Proposal failed")

            proposal_id = (proposal_response.get("proposal") or {}).get("id")
            if not proposal_id:
                return TradeResult.failure("Proposal did not return an id")

            buy_response = await self._session.send_request({
                "buy": proposal_id,
                "price": amount
            })

            bought = buy_response.get("buy") or {}
            logger.info(f"Bought {contract_type} on {symbol}: contract {bought.get('contract_id')}")
            return TradeResult(
                success=True,
                contract_id=as_str(bought.get("contract_id")) or None,
                buy_price=as_float(bought.get("buy_price"), None)
            )
        except Exception as e:
            logger.error(f"Buy Contract Error: {e}")
            return TradeResult.failure(error_message(e, "Unknown trade error"))

    @staticmethod
    def _validate_contract(symbol, contract_type, amount, duration, duration_unit, basis) -> Optional[str]:
        if not symbol:
            return "symbol is required"
        if contract_type not in CONTRACT_TYPES:
            return f"Unsupported contract_type: {contract_type}"
        if duration_unit not in DURATION_UNITS:
            return f"Unsupported duration_unit: {duration_unit}"
        if basis not in CONTRACT_BASES:
            return f"Unsupported basis: {basis}"
        if amount is None:
            return "amount must be a number"
        if amount <= 0:
            return "amount must be positive"
        if duration is None:
            return "duration must be a whole number"
        if duration <= 0:
            return "duration must be positive"
        return None

    async def sell_contract(self, contract_id: str, price: Optional[float] = None) -> TradeResult:
        if not contract_id:
            return TradeResult.failure("contract_id is required")
        try:
            response = await self._session.send_request({
                "sell": contract_id,
                "price": price or 0
            })

            sold = response.get("sell") or {}
            return TradeResult(
                success=True,
                contract_id=as_str(sold.get("contract_id")) or as_str(contract_id),
                sold_for=as_float(sold.get("sold_for"), None)
            )
        except Exception as e:
            logger.error(f"Sell Contract Error: {e}")
            return TradeResult.failure(error_message(e, "Unknown sell error"))

    # --- MT5 orders ---

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
        order_type = order_type or "market"
        volume = as_float(volume, None)
        if not login:
            return MT5TradeResult.failure("MT5 login is required")
        if not symbol:
            return MT5TradeResult.failure("symbol is required")
        if volume is None:
            return MT5TradeResult.failure("volume must be a number")
        if volume <= 0:
            return MT5TradeResult.failure("volume must be positive")
        if action not in MT5_ACTIONS:
            return MT5TradeResult.failure("action must be 'buy' or 'sell'")
        if order_type not in MT5_ORDER_TYPES:
            return MT5TradeResult.failure("order_type must be 'market', 'limit' or 'stop'")
        if order_type != "market" and price is None:
            return MT5TradeResult.failure(f"price is required for {order_type} orders")

        order_request = drop_unset({
            "mt5_new_order": 1,
            "login": login,
            "symbol": symbol,
            "volume": volume,
            "action": action,
            "type": order_type,
            # Price only applies to pending orders
            "price": price if order_type != "market" else None,
            "stop_loss": stop_loss,
            "take_profit": take_profit,
            "comment": comment or None
        })

        try:
            logger.info(f"Placing MT5 order: {order_request}")
            response = await self._session.send_request(order_request)

            placed = response.get("mt5_new_order") or {}
            order_id = placed.get("order_id")
            return MT5TradeResult(
                success=True,
                order_id=as_str(order_id) if order_id is not None else None,
                ticket=as_int(placed.get("ticket"), None),
                price=as_float(placed.get("price"), None),
                volume=volume,
                symbol=symbol,
                action=action
            )
        except Exception as e:
            logger.error(f"MT5 Order Error: {e}")
            return MT5TradeResult.failure(error_message(e, "MT5 order failed"))

    async def mt5_close_position(self,
                                 login: str,
                                 ticket: Optional[int] = None,
                                 volume: Optional[float] = None) -> MT5TradeResult:
        """Omitting `volume` closes the whole position."""
        if not login:
            return MT5TradeResult.failure("MT5 login is required")
        if ticket is None:
            return MT5TradeResult.failure("ticket is required")

        close_request = drop_unset({
            "mt5_close_position": 1,
            "login": login,
            "ticket": ticket,
            "volume": volume or None
        })

        try:
            logger.info(f"Closing MT5 position: {close_request}")
            response = await self._session.send_request(close_request)

            order_id = (response.get("mt5_close_position") or {}).get("order_id")
            return MT5TradeResult(
                success=True,
                ticket=ticket,
                order_id=as_str(order_id) if order_id is not None else None
            )
        except Exception as e:
            logger.error(f"MT5 Close Position Error: {e}")
            return MT5TradeResult.failure(error_message(e, "Failed to close position"))

    async def mt5_modify_position(self,
                                  login: str,
                                  ticket: Optional[int] = None,
                                  stop_loss: Optional[float] = None,
                                  take_profit: Optional[float] = None) -> MT5TradeResult:
        """
        Only the levels that are given are sent; an omitted level keeps
        its current value on the server.
        """
        if not login:
            return MT5TradeResult.failure("MT5 login is required")
        if ticket is None:
            return MT5TradeResult.failure("ticket is required")
        if stop_loss is None and take_profit is None:
            return MT5TradeResult.failure("stop_loss or take_profit is required")

        modify_request = drop_unset({
            "mt5_modify_position": 1,
            "login": login,
            "ticket": ticket,
            "stop_loss": stop_loss,
            "take_profit": take_profit
        })

        try:
            logger.info(f"Modifying MT5 position: {modify_request}")
            await self._session.send_request(modify_request)
            return MT5TradeResult(success=True, ticket=ticket)
        except Exception as e:
            logger.error(f"MT5 Modify Position Error: {e}")
            return MT5TradeResult.failure(error_message(e, "Failed to modify position"))
