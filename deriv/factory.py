"""
Trading Session Factory
-----------------------

Wires a `DerivConnector` and its adapters into one caller-owned
`TradingSession`. There is no process-wide instance: whoever creates
the session passes it to its consumers and disconnects it on shutdown.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .connector import DerivConnector, DEFAULT_APP_ID, DEFAULT_WS_URL
from .adapters import DerivAccountRepository, DerivTradeExecutionService

logger = logging.getLogger(__name__)


@dataclass
class TradingSession:
    """The connector plus the read and write operation surfaces built on it."""
    connector: DerivConnector
    accounts: DerivAccountRepository
    trading: DerivTradeExecutionService

    @property
    def connected(self) -> bool:
        return self.connector.connected

    async def close(self) -> None:
        await self.connector.disconnect()


def create_trading_session(api_token: Optional[str],
                           url: str = DEFAULT_WS_URL,
                           app_id: int = DEFAULT_APP_ID,
                           currency: str = "USD",
                           request_timeout: float = 30.0,
                           reconnect_base_delay: float = 3.0,
                           max_reconnect_attempts: int = 5,
                           **connector_kwargs) -> Optional[TradingSession]:
    """
    Builds a session, or returns None when no API token is configured.
    The connection is opened lazily by the first request.
    """
    if not api_token:
        logger.warning("DERIV_API_TOKEN not configured")
        return None

    connector = DerivConnector(
        api_token=api_token,
        url=url,
        app_id=app_id,
        request_timeout=request_timeout,
        reconnect_base_delay=reconnect_base_delay,
        max_reconnect_attempts=max_reconnect_attempts,
        **connector_kwargs
    )
    return TradingSession(
        connector=connector,
        accounts=DerivAccountRepository(connector),
        trading=DerivTradeExecutionService(connector, currency=currency)
    )
