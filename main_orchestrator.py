"""
main_orchestrator.py
The main entry point for the voice assistant's trading back-end.

This module is responsible for:
1. Loading configuration.
2. Setting up the trading session (Dependency Injection).
3. Running one tool call, or printing an account snapshot.
4. Handling graceful shutdown.

Usage:
    python main_orchestrator.py
    python main_orchestrator.py get_symbol_price '{"symbol": "R_100"}'
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from config import load_config, Config
from deriv import TradingSession, create_trading_session
from tool_dispatcher import ToolCallDispatcher

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def setup_dependencies(cfg: Config) -> Optional[TradingSession]:
    """
    Builds the trading session from configuration.
    Returns None when no API token is configured.
    """
    logger.info("Setting up dependencies...")
    session = create_trading_session(
        api_token=cfg.deriv_api_token,
        url=cfg.deriv_ws_url,
        app_id=cfg.deriv_app_id,
        currency=cfg.deriv_currency,
        request_timeout=cfg.request_timeout_seconds,
        reconnect_base_delay=cfg.reconnect_base_delay_seconds,
        max_reconnect_attempts=cfg.max_reconnect_attempts
    )
    if session is not None:
        session.connector.on_message(_log_push)
        logger.info("Trading session initialized.")
    return session


def _log_push(message: Dict[str, Any]) -> None:
    """Logs unsolicited gateway pushes (price ticks, notifications)."""
    if "req_id" not in message:
        logger.debug(f"Gateway push: {message.get('msg_type', 'unknown')}")


def parse_tool_call(argv: List[str]) -> Optional[tuple]:
    """Reads `<tool_name> [json_args]` from the command line."""
    if not argv:
        return None
    name = argv[0]
    args = json.loads(argv[1]) if len(argv) > 1 else {}
    if not isinstance(args, dict):
        raise ValueError("Tool arguments must be a JSON object")
    return name, args


async def snapshot(dispatcher: ToolCallDispatcher) -> Dict[str, Any]:
    """Fetches the account summary the assistant reads out on activation."""
    return {
        "account": await dispatcher.dispatch("get_account_info"),
        "positions": await dispatcher.dispatch("get_open_positions"),
        "mt5_accounts": await dispatcher.dispatch("get_mt5_accounts"),
    }


async def execute(dispatcher: ToolCallDispatcher, tool_call: Optional[tuple]) -> Dict[str, Any]:
    """Runs the requested tool, or the account snapshot when none was given."""
    if tool_call is None:
        return await snapshot(dispatcher)
    return await dispatcher.dispatch(*tool_call)


def failed(output: Dict[str, Any]) -> bool:
    """True when the tool call, or any part of the snapshot, reported an error."""
    if "error" in output:
        return True
    if "result" in output:
        return False
    return any(isinstance(part, dict) and "error" in part for part in output.values())


async def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    session: Optional[TradingSession] = None

    try:
        # 1. Load Config
        cfg = load_config()
        logging.getLogger().setLevel(cfg.log_level)
        tool_call = parse_tool_call(sys.argv[1:] if argv is None else argv)

        # 2. Setup
        session = setup_dependencies(cfg)
        dispatcher = ToolCallDispatcher(session)

        # 3. Run
        output = await execute(dispatcher, tool_call)
        print(json.dumps(output, indent=2, default=str))
        return 1 if failed(output) else 0

    except ValueError as e:
        logger.error(f"Invalid configuration or arguments: {e}")
        return 2
    except Exception as e:
        logger.exception(f"Application failed: {e}")
        return 1
    finally:
        # 4. Graceful Shutdown
        if session is not None:
            await session.close()
        logger.info("Application shut down.")


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
