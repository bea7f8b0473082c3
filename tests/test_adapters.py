"""
Typed trading operations over the in-memory gateway: request shapes,
reply projection, validation, and the no-raise failure contract.
"""

import pytest

from deriv import AccountInfo, MT5TradeResult, Position, TradeResult
from deriv.utils import SECONDS_PER_DAY


def _error(message: str) -> dict:
    return {"error": {"code": "InputValidationFailed", "message": message}}


# --- Account data ---

@pytest.mark.asyncio
async def test_symbol_price_returns_quote(session, gateway):
    gateway.routes["ticks"] = {"tick": {"symbol": "R_100", "quote": 943.21}, "msg_type": "tick"}

    price = await session.accounts.get_symbol_price("R_100")

    assert price == 943.21
    assert gateway.sent() == [{"ticks": "R_100", "subscribe": 0, "req_id": 2}]


@pytest.mark.asyncio
async def test_symbol_price_returns_none_on_gateway_error(session, gateway):
    gateway.routes["ticks"] = _error("Symbol XYZ is invalid.")

    assert await session.accounts.get_symbol_price("XYZ") is None


@pytest.mark.asyncio
async def test_account_info_merges_balance_and_authorize(session, gateway):
    gateway.routes["balance"] = {"balance": {"balance": 1000.5, "currency": "USD", "loginid": "CR100"}}

    info = await session.accounts.get_account_info()

    assert info == AccountInfo(
        balance=1000.5,
        currency="USD",
        loginid="CR100",
        account_type="trading",
        is_virtual=False
    )
    balance_frame = gateway.socket.frames("balance")[0]
    assert balance_frame["subscribe"] == 0


@pytest.mark.asyncio
async def test_open_positions_map_portfolio_contracts(session, gateway):
    gateway.routes["portfolio"] = {"portfolio": {"contracts": [
        {"contract_id": 111, "symbol": "R_100", "buy_price": 5, "contract_type": "CALL",
         "date_start": 1700000000, "date_expiry": 1700000300},
        {"contract_id": 112, "symbol": "R_50", "buy_price": 2.5, "contract_type": "PUT",
         "date_start": 1700000100},
    ]}}

    positions = await session.accounts.get_open_positions()

    assert positions[0] == Position(
        contract_id="111", symbol="R_100", buy_price=5.0, current_spot=None, profit=None,
        contract_type="CALL", date_start=1700000000, date_expiry=1700000300
    )
    assert positions[1].date_expiry is None


@pytest.mark.asyncio
async def test_available_symbols_returns_codes(session, gateway):
    gateway.routes["active_symbols"] = {"active_symbols": [{"symbol": "R_100"}, {"symbol": "frxEURUSD"}]}

    assert await session.accounts.get_available_symbols() == ["R_100", "frxEURUSD"]
    assert gateway.socket.frames("active_symbols")[0]["active_symbols"] == "brief"


@pytest.mark.asyncio
async def test_profit_table_requests_descending_with_default_limit(session, gateway):
    rows = [{"contract_id": 2, "sell_price": 9.5}, {"contract_id": 1, "sell_price": 0}]
    gateway.routes["profit_table"] = {"profit_table": {"count": 2, "transactions": rows}}

    assert await session.accounts.get_profit_table() == rows
    frame = gateway.socket.frames("profit_table")[0]
    assert frame["sort"] == "DESC"
    assert frame["limit"] == 50


@pytest.mark.asyncio
async def test_transaction_history_passes_limit(session, gateway):
    gateway.routes["statement"] = {"statement": {"transactions": [{"action_type": "buy"}]}}

    assert await session.accounts.get_transaction_history(limit=10) == [{"action_type": "buy"}]
    assert gateway.socket.frames("statement")[0]["limit"] == 10


# --- MT5 queries ---

@pytest.mark.asyncio
async def test_mt5_accounts_are_projected(session, gateway):
    gateway.routes["mt5_login_list"] = {"mt5_login_list": [
        {"login": "MTR100", "balance": 250, "leverage": 500, "server": "p01_ts01",
         "account_type": "real", "market_type": "synthetic", "display_balance": "250.00"},
    ]}

    accounts = await session.accounts.get_mt5_accounts()

    assert len(accounts) == 1
    assert accounts[0].login == "MTR100"
    assert accounts[0].leverage == 500.0
    assert accounts[0].market_type == "synthetic"
    assert accounts[0].name is None


@pytest.mark.asyncio
async def test_mt5_account_info_returns_none_without_settings(session, gateway):
    gateway.routes["mt5_get_settings"] = {"mt5_get_settings": {}}

    assert await session.accounts.get_mt5_account_info("MTR100") is None


@pytest.mark.asyncio
async def test_mt5_open_positions_accept_alternate_field_names(session, gateway):
    gateway.routes["mt5_open_positions"] = {"mt5_open_positions": [
        {"ticket": 501, "symbol": "EURUSD", "volume": 0.1, "open_price": 1.08,
         "current_price": 1.09, "profit": 10, "type": 0, "open_time": 1700000000, "sl": 1.07},
        {"position_id": 502, "symbol": "XAUUSD", "volume": 0.2, "price_open": 1990,
         "price_current": 1980, "profit": -20, "type": 1, "time_open": 1700000500},
    ]}

    buy, sell = await session.accounts.get_mt5_open_positions("MTR100")

    assert (buy.position_id, buy.type, buy.price_open, buy.stop_loss, buy.take_profit) == \
        ("501", "buy", 1.08, 1.07, None)
    assert (sell.position_id, sell.type, sell.price_current, sell.time_open) == \
        ("502", "sell", 1980.0, 1700000500)


@pytest.mark.asyncio
async def test_mt5_symbols_keep_mt5_markets_only(session, gateway):
    gateway.routes["active_symbols"] = {"active_symbols": [
        {"symbol": "R_100", "display_name": "Volatility 100", "market": "synthetic_index",
         "market_type_other": "synthetic_index", "submarket": "random_index"},
        {"symbol": "frxEURUSD", "display_name": "EUR/USD", "market": "forex", "submarket": "forex"},
        {"symbol": "cryBTCUSD", "display_name": "BTC/USD", "market": "cryptocurrency",
         "submarket": "non_stable_coin"},
    ]}

    symbols = await session.accounts.get_mt5_symbols("MTR100")

    assert [(s.symbol, s.market_type) for s in symbols] == [
        ("R_100", "synthetic_index"),
        ("frxEURUSD", "forex"),
    ]
    assert gateway.socket.frames("active_symbols")[0]["active_symbols"] == "full"


@pytest.mark.asyncio
async def test_mt5_trade_history_covers_days_back(session, gateway):
    gateway.routes["mt5_deal_history"] = {"mt5_deal_history": [{"deal": 1}]}

    assert await session.accounts.get_mt5_trade_history("MTR100", days=7) == [{"deal": 1}]
    frame = gateway.socket.frames("mt5_deal_history")[0]
    assert frame["login"] == "MTR100"
    assert frame["to"] - frame["from"] == 7 * SECONDS_PER_DAY


@pytest.mark.asyncio
async def test_mt5_queries_without_login_send_nothing(session, gateway):
    assert await session.accounts.get_mt5_open_positions("") == []
    assert await session.accounts.get_mt5_symbols("") == []
    assert await session.accounts.get_mt5_trade_history("") == []
    assert await session.accounts.get_mt5_account_info("") is None
    assert gateway.calls == []


# --- Contracts ---

@pytest.mark.asyncio
async def test_buy_contract_accepts_proposal(session, gateway):
    gateway.routes["proposal"] = {"proposal": {"id": "p1", "ask_price": 5}}
    gateway.routes["buy"] = {"buy": {"contract_id": "c1", "buy_price": 5}}

    result = await session.trading.buy_contract(
        symbol="R_100", contract_type="CALL", amount=5, duration=5, duration_unit="t")

    assert result.to_dict() == {"success": True, "contract_id": "c1", "buy_price": 5}
    proposal = gateway.socket.frames("proposal")[0]
    assert {k: proposal[k] for k in ("amount", "basis", "contract_type", "currency",
                                     "duration", "duration_unit", "symbol")} == {
        "amount": 5, "basis": "stake", "contract_type": "CALL", "currency": "USD",
        "duration": 5, "duration_unit": "t", "symbol": "R_100",
    }
    assert "barrier" not in proposal
    buy = gateway.socket.frames("buy")[0]
    assert (buy["buy"], buy["price"]) == ("p1", 5)
    # The buy strictly follows the proposal
    assert buy["req_id"] > proposal["req_id"]


@pytest.mark.asyncio
async def test_buy_contract_stops_when_proposal_fails(session, gateway):
    gateway.routes["proposal"] = {"error": {"message": "Invalid symbol"}}
    gateway.routes["buy"] = {"buy": {"contract_id": "c1", "buy_price": 5}}

    result = await session.trading.buy_contract(
        symbol="NOPE", contract_type="CALL", amount=5, duration=5, duration_unit="t")

    assert result.to_dict() == {"success": False, "error": "Invalid symbol"}
    assert gateway.socket.frames("buy") == []


@pytest.mark.asyncio
async def test_buy_contract_sends_barrier_when_given(session, gateway):
    gateway.routes["proposal"] = {"proposal": {"id": "p2"}}
    gateway.routes["buy"] = {"buy": {"contract_id": "c2", "buy_price": 10}}

    await session.trading.buy_contract(
        symbol="R_100", contract_type="ONETOUCH", amount=10, duration=1, duration_unit="h",
        basis="payout", barrier="+0.5")

    proposal = gateway.socket.frames("proposal")[0]
    assert (proposal["barrier"], proposal["basis"]) == ("+0.5", "payout")


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, message", [
    ({"contract_type": "SIDEWAYS"}, "Unsupported contract_type"),
    ({"duration_unit": "w"}, "Unsupported duration_unit"),
    ({"amount": 0}, "amount must be positive"),
    ({"duration": -1}, "duration must be positive"),
])
async def test_buy_contract_validates_before_sending(session, gateway, overrides, message):
    params = dict(symbol="R_100", contract_type="CALL", amount=5, duration=5, duration_unit="t")
    params.update(overrides)

    result = await session.trading.buy_contract(**params)

    assert not result.success
    assert message in result.error
    assert gateway.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, message", [
    ({"amount": "five"}, "amount must be a number"),
    ({"amount": None}, "amount must be a number"),
    ({"duration": "soon"}, "duration must be a whole number"),
    ({"duration": None}, "duration must be a whole number"),
])
async def test_buy_contract_rejects_non_numeric_values(session, gateway, overrides, message):
    params = dict(symbol="R_100", contract_type="CALL", amount=5, duration=5, duration_unit="t")
    params.update(overrides)

    result = await session.trading.buy_contract(**params)

    assert result.to_dict() == {"success": False, "error": message}
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_buy_contract_accepts_numeric_strings(session, gateway):
    gateway.routes["proposal"] = {"proposal": {"id": "p-1", "ask_price": 5}}
    gateway.routes["buy"] = {"buy": {"contract_id": 42, "buy_price": 5}}

    result = await session.trading.buy_contract(
        symbol="R_100", contract_type="CALL", amount="5", duration="5", duration_unit="t")

    assert result.success
    proposal = gateway.socket.frames("proposal")[0]
    assert (proposal["amount"], proposal["duration"]) == (5.0, 5)
    assert gateway.socket.frames("buy")[0]["price"] == 5.0


@pytest.mark.asyncio
async def test_sell_contract_at_market(session, gateway):
    gateway.routes["sell"] = {"sell": {"contract_id": 111, "sold_for": 7.5, "transaction_id": 9}}

    result = await session.trading.sell_contract("111")

    assert result == TradeResult(success=True, contract_id="111", sold_for=7.5)
    assert gateway.socket.frames("sell")[0]["price"] == 0


# --- MT5 orders ---

@pytest.mark.asyncio
async def test_mt5_market_order_omits_price(session, gateway):
    gateway.routes["mt5_new_order"] = {"mt5_new_order": {"order_id": 123, "ticket": 501, "price": 1.0842}}

    result = await session.trading.mt5_new_order(
        login="MTR100", symbol="EURUSD", volume=0.1, action="buy", price=1.05, stop_loss=1.07)

    assert result == MT5TradeResult(success=True, order_id="123", ticket=501, price=1.0842,
                                    volume=0.1, symbol="EURUSD", action="buy")
    frame = gateway.socket.frames("mt5_new_order")[0]
    assert frame["type"] == "market"
    assert frame["stop_loss"] == 1.07
    assert "price" not in frame
    assert "take_profit" not in frame
    assert "comment" not in frame


@pytest.mark.asyncio
async def test_mt5_limit_order_sends_price(session, gateway):
    gateway.routes["mt5_new_order"] = {"mt5_new_order": {"order_id": 124}}

    await session.trading.mt5_new_order(
        login="MTR100", symbol="EURUSD", volume=0.1, action="sell", order_type="limit",
        price=1.1, comment="voice order")

    frame = gateway.socket.frames("mt5_new_order")[0]
    assert (frame["type"], frame["price"], frame["comment"]) == ("limit", 1.1, "voice order")


@pytest.mark.asyncio
async def test_mt5_order_returns_gateway_error(session, gateway):
    gateway.routes["mt5_new_order"] = _error("Not enough money")

    result = await session.trading.mt5_new_order(
        login="MTR100", symbol="EURUSD", volume=50, action="buy")

    assert result.to_dict() == {"success": False, "error": "Not enough money"}


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [
    dict(login="", symbol="EURUSD", volume=0.1, action="buy"),
    dict(login="MTR100", symbol="EURUSD", volume=0, action="buy"),
    dict(login="MTR100", symbol="EURUSD", volume=0.1, action="hold"),
    dict(login="MTR100", symbol="EURUSD", volume=0.1, action="buy", order_type="stop"),
])
async def test_mt5_order_validation_sends_nothing(session, gateway, params):
    result = await session.trading.mt5_new_order(**params)

    assert not result.success
    assert result.error
    assert gateway.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("volume", ["lots", None, [0.1]])
async def test_mt5_order_rejects_non_numeric_volume(session, gateway, volume):
    result = await session.trading.mt5_new_order("MTR100", "EURUSD", volume, "buy")

    assert result.to_dict() == {"success": False, "error": "volume must be a number"}
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_mt5_order_accepts_numeric_string_volume(session, gateway):
    gateway.routes["mt5_new_order"] = {"mt5_new_order": {"order_id": 125}}

    result = await session.trading.mt5_new_order("MTR100", "EURUSD", "0.1", "buy")

    assert result.success
    assert result.volume == 0.1
    assert gateway.socket.frames("mt5_new_order")[0]["volume"] == 0.1


@pytest.mark.asyncio
async def test_mt5_close_position_partial_and_full(session, gateway):
    gateway.routes["mt5_close_position"] = {"mt5_close_position": {"order_id": 77}}

    partial = await session.trading.mt5_close_position(login="MTR100", ticket=501, volume=0.05)
    full = await session.trading.mt5_close_position(login="MTR100", ticket=501)

    assert partial == MT5TradeResult(success=True, ticket=501, order_id="77")
    assert full.success
    first, second = gateway.socket.frames("mt5_close_position")
    assert first["volume"] == 0.05
    assert "volume" not in second


@pytest.mark.asyncio
async def test_mt5_modify_sends_only_given_levels(session, gateway):
    gateway.routes["mt5_modify_position"] = {"mt5_modify_position": 1}

    result = await session.trading.mt5_modify_position(login="MTR100", ticket=501, take_profit=1.1)

    assert result.to_dict() == {"success": True, "ticket": 501}
    frame = gateway.socket.frames("mt5_modify_position")[0]
    assert frame["take_profit"] == 1.1
    assert "stop_loss" not in frame


@pytest.mark.asyncio
async def test_mt5_modify_without_ticket_fails_immediately(session, gateway):
    result = await session.trading.mt5_modify_position(login="MTR100")

    assert result.to_dict() == {"success": False, "error": "ticket is required"}
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_mt5_modify_without_levels_fails_immediately(session, gateway):
    result = await session.trading.mt5_modify_position(login="MTR100", ticket=501)

    assert not result.success
    assert gateway.calls == []


# --- Failure contract ---

def _operations(session):
    accounts, trading = session.accounts, session.trading
    return [
        (accounts.get_account_info(), None),
        (accounts.get_open_positions(), []),
        (accounts.get_available_symbols(), []),
        (accounts.get_symbol_price("R_100"), None),
        (accounts.get_transaction_history(), []),
        (accounts.get_profit_table(), []),
        (accounts.get_mt5_accounts(), []),
        (accounts.get_mt5_account_info("MTR100"), None),
        (accounts.get_mt5_symbols("MTR100"), []),
        (accounts.get_mt5_open_positions("MTR100"), []),
        (accounts.get_mt5_trade_history("MTR100"), []),
    ]


@pytest.mark.asyncio
async def test_queries_return_empty_values_when_transport_fails(session, gateway):
    gateway.fail_with = OSError("gateway unreachable")

    for call, expected in _operations(session):
        assert await call == expected


@pytest.mark.asyncio
async def test_writes_return_failure_results_when_transport_fails(session, gateway):
    gateway.fail_with = OSError("gateway unreachable")
    trading = session.trading

    results = [
        await trading.buy_contract("R_100", "CALL", 5, 5, "t"),
        await trading.sell_contract("111"),
        await trading.mt5_new_order("MTR100", "EURUSD", 0.1, "buy"),
        await trading.mt5_close_position("MTR100", 501),
        await trading.mt5_modify_position("MTR100", 501, stop_loss=1.0),
    ]

    for result in results:
        assert result.success is False
        assert "gateway unreachable" in result.error


@pytest.mark.asyncio
async def test_operations_return_failure_shape_on_timeout(session, gateway):
    gateway.routes["portfolio"] = None
    gateway.routes["proposal"] = None

    assert await session.accounts.get_open_positions() == []
    result = await session.trading.buy_contract("R_100", "CALL", 5, 5, "t")

    assert result.to_dict() == {"success": False, "error": "Request timeout"}
    assert gateway.socket.frames("buy") == []
