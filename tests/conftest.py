"""
Shared fixtures: an in-memory stand-in for the Deriv websocket gateway.

`FakeConnectFactory` replaces `websockets.connect`. Every socket it hands
out records the decoded frames the client sends and answers them from
`routes`: the first route key present in an outbound frame decides the
reply body. A route mapped to None leaves the request unanswered.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from websockets.protocol import State

from deriv import DerivConnector, create_trading_session

TEST_TOKEN = "test-token"
TEST_URL = "wss://gateway.test/websockets/v3"

_CLOSE = object()

DEFAULT_ROUTES: Dict[str, Any] = {
    "authorize": {
        "authorize": {"loginid": "CR100", "account_type": "trading", "is_virtual": 0, "currency": "USD"},
        "msg_type": "authorize",
    },
}


class FakeGatewaySocket:
    """Implements the slice of the websockets client API the connector uses."""

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.sent: List[Dict[str, Any]] = []
        self.state = State.OPEN
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, raw: str) -> None:
        if self.state != State.OPEN:
            raise ConnectionError("socket is closed")
        frame = json.loads(raw)
        self.sent.append(frame)
        reply = self._route(frame)
        if reply is not None:
            self.push(reply)

    def _route(self, frame: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for key, body in self.routes.items():
            if key in frame:
                if callable(body):
                    body = body(frame)
                if body is None:
                    return None
                return dict(body, req_id=frame["req_id"])
        return None

    def push(self, message: Dict[str, Any]) -> None:
        """Delivers an inbound frame, as if sent by the gateway."""
        self._inbox.put_nowait(json.dumps(message))

    def push_raw(self, text: str) -> None:
        self._inbox.put_nowait(text)

    def drop(self) -> None:
        """Server-side close."""
        self._inbox.put_nowait(_CLOSE)

    def fail(self, error: Exception) -> None:
        """Transport error raised from the receive side."""
        self._inbox.put_nowait(error)

    async def close(self) -> None:
        self.state = State.CLOSED
        self._inbox.put_nowait(_CLOSE)

    def frames(self, key: str) -> List[Dict[str, Any]]:
        return [f for f in self.sent if key in f]

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSE:
            self.state = State.CLOSED
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnectFactory:
    """Callable replacement for `websockets.connect`."""

    def __init__(self):
        self.routes: Dict[str, Any] = dict(DEFAULT_ROUTES)
        self.sockets: List[FakeGatewaySocket] = []
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    async def __call__(self, url: str, **kwargs) -> FakeGatewaySocket:
        self.calls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        sock = FakeGatewaySocket(self.routes)
        self.sockets.append(sock)
        return sock

    @property
    def socket(self) -> FakeGatewaySocket:
        return self.sockets[-1]

    def sent(self) -> List[Dict[str, Any]]:
        """All frames sent over every socket, minus authorization."""
        return [f for s in self.sockets for f in s.sent if "authorize" not in f]


class SleepRecorder:
    """Replaces asyncio.sleep for the reconnection policy; returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def settle(rounds: int = 50) -> None:
    """Lets background tasks (receive loop, reconnects) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for_frames(sock: FakeGatewaySocket, count: int) -> None:
    for _ in range(200):
        if len(sock.sent) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} frames, got {len(sock.sent)}")


@pytest.fixture
def gateway() -> FakeConnectFactory:
    return FakeConnectFactory()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest_asyncio.fixture
async def connector(gateway, sleeper):
    conn = DerivConnector(
        api_token=TEST_TOKEN,
        url=TEST_URL,
        request_timeout=0.2,
        reconnect_base_delay=3.0,
        max_reconnect_attempts=5,
        connect_factory=gateway,
        sleep=sleeper
    )
    yield conn
    await conn.disconnect()


@pytest_asyncio.fixture
async def session(gateway, sleeper):
    trading_session = create_trading_session(
        TEST_TOKEN,
        url=TEST_URL,
        request_timeout=0.2,
        connect_factory=gateway,
        sleep=sleeper
    )
    yield trading_session
    await trading_session.close()
