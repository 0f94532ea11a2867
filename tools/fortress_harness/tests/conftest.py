"""
Shared fakes for the harness tests.

FakeHttp and FakeOpener stand in for the network: tests declare which URLs
answer and inspect what was attempted.
"""

import asyncio
import random
from typing import Any, Dict, List, Optional

import aiohttp
import pytest

from fortress_harness.client_session import ClientSession
from fortress_harness.config import HarnessConfig, ServerConfiguration
from fortress_harness.endpoint_probe import EndpointProbe
from fortress_harness.logger import HarnessLogger


API_URL = 'http://localhost:5500/api'
WS_URL = 'ws://localhost:5500/game'

_CLOSED = object()


class FakeSocket:
    """In-memory WebSocket connection"""

    def __init__(self, url: str):
        self.url = url
        self.sent: List[str] = []
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.fail_sends:
            raise OSError('broken pipe')
        self.sent.append(data)

    def feed(self, raw: Any) -> None:
        self._inbox.put_nowait(raw)

    def remote_close(self) -> None:
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)


class FakeOpener:
    """
    WebSocket opener that only succeeds for the given URLs.

    URLs in hang never complete the handshake; like open_websocket, the attempt
    is bounded by its timeout and ends in asyncio.TimeoutError.
    """

    def __init__(self, reachable=(), hang=()):
        self.reachable = set(reachable)
        self.hang = set(hang)
        self.attempts: List[str] = []
        self.sockets: List[FakeSocket] = []

    async def __call__(self, url: str, timeout: float) -> FakeSocket:
        self.attempts.append(url)
        if url in self.hang:
            await asyncio.wait_for(asyncio.Event().wait(), timeout=timeout)
        if url not in self.reachable:
            raise OSError(f'Connection refused: {url}')
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket


class FakeHttp:
    """HttpClient replacement keyed by URL"""

    def __init__(self, statuses: Optional[Dict[str, int]] = None,
                 registrations: Optional[Dict[str, Any]] = None,
                 json_bodies: Optional[Dict[str, Any]] = None):
        self.statuses = dict(statuses or {})
        self.registrations = dict(registrations or {})
        self.json_bodies = dict(json_bodies or {})
        self.requests: List[str] = []
        self.posted: List[Dict[str, Any]] = []
        self.closed = False

    async def get_status(self, url: str, timeout: float) -> int:
        self.requests.append(url)
        if url not in self.statuses:
            raise aiohttp.ClientConnectionError(f'Cannot connect to {url}')
        return self.statuses[url]

    async def get_json(self, url: str, timeout: float) -> Any:
        self.requests.append(url)
        if url not in self.json_bodies:
            raise aiohttp.ClientConnectionError(f'Cannot connect to {url}')
        return self.json_bodies[url]

    async def post_json(self, url: str, payload: Dict[str, Any], timeout: float) -> Any:
        self.requests.append(url)
        self.posted.append(payload)
        if url not in self.registrations:
            raise aiohttp.ClientConnectionError(f'Cannot connect to {url}')
        return self.registrations[url]

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


def make_session(config: HarnessConfig, http: Any, opener: Any,
                 session_id: int = 1, mock_mode: bool = False) -> ClientSession:
    logger = HarnessLogger('test', debug=True)
    probe = EndpointProbe(http, logger.child('probe'), opener)
    return ClientSession(session_id, config, http, probe, logger, mock_mode=mock_mode,
                         ws_opener=opener, rng=random.Random(session_id))


@pytest.fixture
def config():
    return HarnessConfig(
        server=ServerConfiguration(API_URL, WS_URL),
        server_supplied=True,
        request_timeout=0.1,
        socket_timeout=0.1,
        heartbeat_interval=0.01,
        simulation_interval=0.01,
    )


@pytest.fixture
def logger():
    return HarnessLogger('test', debug=True)
