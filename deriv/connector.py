"""
Deriv Connection Manager
------------------------

This file contains the `DerivConnector` class, which has the
Single Responsibility of managing the websocket connection to the
Deriv gateway and multiplexing request/reply pairs over it.

Every outbound request gets a `req_id`; the receive loop resolves the
matching pending future when a reply carrying that id arrives. All
inbound frames, replies included, are also fanned out to passive
subscribers (price ticks, push notifications).
"""

import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import websockets
from websockets.protocol import State as WsState

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://ws.derivws.com/websockets/v3"
DEFAULT_APP_ID = 1089

MessageHandler = Callable[[Dict[str, Any]], None]


# --- Errors ---

class DerivError(Exception):
    """Base class for errors raised by the connector."""


class DerivAPIError(DerivError):
    """The gateway answered a request with an `error` payload."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @classmethod
    def from_payload(cls, payload: Any) -> "DerivAPIError":
        if isinstance(payload, dict):
            return cls(str(payload.get("message") or "Unknown gateway error"), payload.get("code"))
        return cls(str(payload))


class RequestTimeoutError(DerivError, TimeoutError):
    """No reply arrived within the request timeout."""


class SessionClosedError(DerivError, ConnectionError):
    """The connection was explicitly closed while the request was in flight."""


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class PendingRequest:
    """Correlation record for one in-flight request."""
    req_id: int
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None

    def settle(self, result: Any = None, error: Optional[BaseException] = None) -> None:
        """Cancels the timer and settles the future once. Callers remove the record first."""
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)


class DerivConnector:
    """
    Handles the lifecycle of the Deriv websocket connection.

    States: DISCONNECTED -> CONNECTING -> OPEN -> (CLOSED | ERRORED).
    An unexpected close schedules a reconnect with linear backoff
    (`base_delay * attempt`) up to `max_reconnect_attempts`. A transport
    error only marks the connector as not connected; the next request
    reconnects lazily.
    """

    def __init__(self,
                 api_token: str,
                 url: str = DEFAULT_WS_URL,
                 app_id: int = DEFAULT_APP_ID,
                 request_timeout: float = 30.0,
                 reconnect_base_delay: float = 3.0,
                 max_reconnect_attempts: int = 5,
                 connect_factory: Optional[Callable[..., Awaitable[Any]]] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if not api_token:
            raise ValueError("api_token is required")

        self._api_token = api_token
        self._url = url
        self._app_id = app_id
        self._request_timeout = request_timeout
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._connect_factory = connect_factory or websockets.connect
        self._sleep = sleep

        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._connected = False
        self._closing = False
        self._request_id = 0
        self._reconnect_attempts = 0
        self._pending: Dict[int, PendingRequest] = {}
        self._handlers: Set[MessageHandler] = set()
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._lazy_connect_lock = asyncio.Lock()

    async def __aenter__(self):
        """Allows using the connector as an async context manager."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        """Closes the connection on context exit."""
        await self.disconnect()

    # --- Properties ---

    @property
    def endpoint(self) -> str:
        separator = "&" if "?" in self._url else "?"
        return f"{self._url}{separator}app_id={self._app_id}"

    @property
    def connected(self) -> bool:
        """True once the session is authorized; reset on close, error or disconnect."""
        return self._connected

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def max_reconnect_attempts(self) -> int:
        return self._max_reconnect_attempts

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def reconnect_delay(self, attempt: int) -> float:
        """Linear backoff: the delay before reconnect attempt `attempt` (1-based)."""
        return self._reconnect_base_delay * attempt

    def _is_open(self) -> bool:
        if self._ws is None or not self._connected:
            return False
        try:
            return self._ws.state == WsState.OPEN
        except AttributeError:
            return getattr(self._ws, "open", False)

    # --- Lifecycle ---

    async def connect(self) -> bool:
        """
        Opens a new transport and authorizes with the configured token.
        Supersedes any transport that is still attached.

        Raises:
            ConnectionError: the transport could not be opened.
            DerivAPIError: the gateway rejected the authorization.
        """
        self._closing = False
        current = asyncio.current_task()
        if self._reconnect_task is not None and self._reconnect_task is not current and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        await self._detach_transport()

        self._state = ConnectionState.CONNECTING
        try:
            ws = await self._connect_factory(self.endpoint)
        except Exception as e:
            self._state = ConnectionState.ERRORED
            self._connected = False
            logger.error(f"Deriv websocket connection failed: {e}")
            raise ConnectionError(f"Failed to connect to Deriv gateway: {e}") from e

        self._ws = ws
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        logger.info("Deriv websocket connected, authorizing...")

        try:
            reply = await self._send({"authorize": self._api_token})
        except BaseException as e:
            # An unauthorized socket is never left attached
            await self._detach_transport()
            self._connected = False
            self._state = ConnectionState.ERRORED
            logger.error(f"Deriv authorization failed: {e}")
            raise

        self._state = ConnectionState.OPEN
        self._connected = True
        self._reconnect_attempts = 0
        loginid = (reply.get("authorize") or {}).get("loginid", "")
        logger.info(f"Deriv session authorized for {loginid or 'unknown login'}.")
        return True

    async def authorize(self) -> Dict[str, Any]:
        """Re-sends the authorization request; the reply describes the account."""
        return await self.send_request({"authorize": self._api_token})

    async def disconnect(self) -> None:
        """
        Closes the transport and stops automatic reconnection.
        In-flight requests are rejected with `SessionClosedError`.
        """
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        await self._detach_transport()
        self._connected = False
        self._state = ConnectionState.DISCONNECTED

        pending, self._pending = self._pending, {}
        for record in pending.values():
            record.settle(error=SessionClosedError("Connection closed"))
        if pending:
            logger.info(f"Discarded {len(pending)} pending request(s) on disconnect.")
        logger.info("Deriv websocket disconnected.")

    async def _detach_transport(self) -> None:
        """Closes the current transport without triggering the close handler."""
        ws, self._ws = self._ws, None
        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if ws is not None:
            await self._close_transport(ws)

    @staticmethod
    async def _close_transport(ws) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"Error while closing Deriv websocket: {e}")

    async def _receive_loop(self, ws) -> None:
        try:
            async for raw in ws:
                self._dispatch(raw)
        except websockets.ConnectionClosed as e:
            logger.info(f"Deriv websocket closed: {e}")
        except Exception as e:
            if self._on_transport_error(ws, e):
                await self._close_transport(ws)
            return
        self._on_transport_closed(ws)

    def _on_transport_error(self, ws, error: Exception) -> bool:
        """Marks the connector not connected. No reconnect is scheduled from here."""
        if ws is not self._ws:
            return False
        logger.error(f"Deriv websocket error: {error}")
        self._ws = None
        self._receive_task = None
        self._connected = False
        self._state = ConnectionState.ERRORED
        return True

    def _on_transport_closed(self, ws) -> None:
        if ws is not self._ws:
            return
        logger.info("Deriv websocket closed.")
        self._ws = None
        self._receive_task = None
        self._connected = False
        self._state = ConnectionState.CLOSED
        self._schedule_reconnect()

    # --- Reconnection ---

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_attempts >= self._max_reconnect_attempts:
            logger.warning(
                f"Reconnect budget exhausted after {self._reconnect_attempts} attempt(s). "
                "Staying disconnected until the next request.")
            self._state = ConnectionState.DISCONNECTED
            return

        self._reconnect_attempts += 1
        delay = self.reconnect_delay(self._reconnect_attempts)
        logger.info(
            f"Attempting to reconnect ({self._reconnect_attempts}/{self._max_reconnect_attempts}) in {delay}s...")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        if self._closing:
            return
        try:
            await self.connect()
        except Exception as e:
            logger.error(f"Reconnect attempt {self._reconnect_attempts} failed: {e}")
            if not self._is_open():
                self._connected = False
                self._schedule_reconnect()

    # --- Request correlation ---

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def send_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sends `request` and waits for the reply tagged with its `req_id`.
        Connects first when no open transport exists.

        Raises:
            DerivAPIError: the reply carried an `error` payload.
            RequestTimeoutError: no reply within the request timeout.
            SessionClosedError: `disconnect()` was called while waiting.
            ConnectionError: the transport could not be opened.
        """
        if not self._is_open():
            async with self._lazy_connect_lock:
                if not self._is_open():
                    await self.connect()
        return await self._send(request)

    async def _send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        if self._ws is None:
            raise ConnectionError("Deriv websocket is not connected")
        loop = asyncio.get_running_loop()
        req_id = self._next_request_id()
        frame = dict(request)
        frame["req_id"] = req_id

        record = PendingRequest(req_id=req_id, future=loop.create_future())
        self._pending[req_id] = record
        try:
            await self._ws.send(json.dumps(frame))
            record.timer = loop.call_later(self._request_timeout, self._expire, req_id)
            return await record.future
        finally:
            if record.timer is not None:
                record.timer.cancel()
            if self._pending.get(req_id) is record:
                del self._pending[req_id]

    def _expire(self, req_id: int) -> None:
        record = self._pending.pop(req_id, None)
        if record is None:
            return
        logger.warning(f"Deriv request {req_id} timed out after {self._request_timeout}s.")
        record.timer = None
        record.settle(error=RequestTimeoutError("Request timeout"))

    def _dispatch(self, raw: Any) -> None:
        """Resolves the matching pending request, then notifies every subscriber."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed frame from Deriv gateway: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring non-object frame from Deriv gateway: {type(data).__name__}")
            return

        req_id = data.get("req_id")
        record = self._pending.pop(req_id, None) if isinstance(req_id, int) else None
        if record is not None:
            if data.get("error"):
                record.settle(error=DerivAPIError.from_payload(data["error"]))
            else:
                record.settle(result=data)

        for handler in list(self._handlers):
            try:
                handler(data)
            except Exception:
                logger.exception("Deriv message handler failed.")

    # --- Subscribers ---

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        """
        Registers a passive observer of every inbound frame.
        Returns a callable that unsubscribes it.
        """
        self._handlers.add(handler)

        def unsubscribe() -> None:
            self._handlers.discard(handler)

        return unsubscribe
