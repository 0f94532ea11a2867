"""
Fortress Harness - Transport adapters

One aiohttp client session shared by every component of a harness run, and the
WebSocket opener used by probes and sessions. Both are injectable so tests can
replace the network.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
import websockets


WebSocketOpener = Callable[[str, float], Awaitable[Any]]


async def open_websocket(url: str, timeout: float) -> Any:
    """Open a WebSocket; the handshake must complete within timeout seconds"""
    async def _open():
        return await websockets.connect(
            url,
            open_timeout=timeout,
            close_timeout=1.0,
            ping_interval=None
        )

    # wait_for cancels the handshake on expiry, which tears the transport down
    return await asyncio.wait_for(_open(), timeout=timeout)


class HttpClient:
    """Lazily created aiohttp session with per-request timeouts"""

    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = headers or {'User-Agent': 'fortress-harness'}
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def get_status(self, url: str, timeout: float) -> int:
        """GET url and return the status code, whatever it is"""
        session = self._get_session()
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout),
                               allow_redirects=False) as response:
            return response.status

    async def get_json(self, url: str, timeout: float) -> Any:
        """GET url, raising for non-2xx, and decode the JSON body"""
        session = self._get_session()
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def post_json(self, url: str, payload: Dict[str, Any], timeout: float) -> Any:
        """
        POST a JSON payload, raising for non-2xx.

        Returns the decoded body, or None when a successful response is not JSON.
        """
        session = self._get_session()
        async with session.post(url, json=payload,
                                timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            response.raise_for_status()
            try:
                return await response.json(content_type=None)
            except ValueError:
                return None

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
