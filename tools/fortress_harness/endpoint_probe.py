"""
Fortress Harness - Endpoint probe

Tests whether a single REST or WebSocket URL answers within a bounded time.
Probing checks transport and server liveness only: any HTTP status counts as
reachable. Every failure mode collapses to an unreachable result.
"""

import time
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlsplit

from .errors import ProbeUnreachable
from .logger import HarnessLogger
from .transport import HttpClient, WebSocketOpener, open_websocket


HTTP_SCHEMES = ('http', 'https')
WS_SCHEMES = ('ws', 'wss')


@dataclass
class ProbeResult:
    """Outcome of probing one URL"""
    url: str
    reachable: bool
    status_code: Optional[int] = None
    latency_ms: float = 0.0
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.reachable


class EndpointProbe:
    """Bounded-timeout reachability checks for HTTP(S) and WebSocket URLs"""

    def __init__(self, http: HttpClient, logger: HarnessLogger,
                 ws_opener: WebSocketOpener = open_websocket):
        self.http = http
        self.logger = logger
        self.ws_opener = ws_opener

    async def probe(self, url: str, timeout: float) -> ProbeResult:
        """Probe url, dispatching on its scheme"""
        scheme = urlsplit(url).scheme.lower()
        if scheme in HTTP_SCHEMES:
            return await self.probe_rest(url, timeout)
        if scheme in WS_SCHEMES:
            return await self.probe_websocket(url, timeout)
        return ProbeResult(url=url, reachable=False, error=f"Unsupported scheme: {scheme!r}")

    async def probe_rest(self, url: str, timeout: float) -> ProbeResult:
        start = time.perf_counter()
        try:
            status = await self.http.get_status(url, timeout)
        except Exception as e:
            self.logger.log(f"Endpoint {url} not available: {_describe(e)}", True)
            return ProbeResult(url=url, reachable=False, latency_ms=_elapsed_ms(start),
                               error=str(ProbeUnreachable(url, _describe(e))))

        self.logger.log(f"Endpoint {url} answered with status {status}", True)
        return ProbeResult(url=url, reachable=True, status_code=status,
                           latency_ms=_elapsed_ms(start))

    async def probe_websocket(self, url: str, timeout: float) -> ProbeResult:
        start = time.perf_counter()
        try:
            connection = await self.ws_opener(url, timeout)
        except Exception as e:
            self.logger.log(f"WebSocket {url} not available: {_describe(e)}", True)
            return ProbeResult(url=url, reachable=False, latency_ms=_elapsed_ms(start),
                               error=str(ProbeUnreachable(url, _describe(e))))

        latency = _elapsed_ms(start)
        try:
            await connection.close()
        except Exception as e:
            # The handshake already succeeded; a failed close does not change that
            self.logger.log(f"WebSocket {url} close failed: {_describe(e)}", True)

        self.logger.log(f"WebSocket {url} opened in {latency:.1f}ms", True)
        return ProbeResult(url=url, reachable=True, latency_ms=latency)

    async def probe_first(self, urls: Iterable[str], timeout: float) -> Optional[ProbeResult]:
        """Probe urls in order and return the first reachable result"""
        for url in urls:
            self.logger.log(f"Trying {url}...", True)
            result = await self.probe(url, timeout)
            if result:
                return result
        return None


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
