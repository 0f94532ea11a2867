"""
Fortress Harness - Server discovery

Searches a fixed space of ports and paths for a server that answers on both its
REST base URL and a WebSocket route. Port-major order: for each port, each path
is probed over REST; the first REST hit has its WebSocket variants probed under
the same port, and the first joint success ends the search.
"""

from typing import Iterator, List, Optional, Sequence, Tuple

from .config import DISCOVERY_WS_PATHS, ServerConfiguration
from .endpoint_probe import EndpointProbe
from .logger import HarnessLogger


class ServerDiscovery:
    """Finds the first fully working REST + WebSocket configuration"""

    def __init__(self, probe: EndpointProbe, logger: HarnessLogger,
                 host: str = 'localhost', rest_timeout: float = 2.0,
                 ws_timeout: float = 2.0):
        self.probe = probe
        self.logger = logger
        self.host = host
        self.rest_timeout = rest_timeout
        self.ws_timeout = ws_timeout

    def rest_candidates(self, ports: Sequence[int],
                        paths: Sequence[str]) -> Iterator[Tuple[int, str, str]]:
        """(port, path, rest_url) in probe order"""
        for port in ports:
            for path in paths:
                yield port, path, f"http://{self.host}:{port}{path}"

    def ws_candidates(self, port: int, path: str) -> List[str]:
        """WebSocket variants under port, in priority order, without duplicates"""
        base = f"ws://{self.host}:{port}"
        variants = list(DISCOVERY_WS_PATHS) + [path or '/']
        urls: List[str] = []
        for ws_path in variants:
            url = f"{base}{ws_path}"
            if url not in urls:
                urls.append(url)
        return urls

    async def discover(self, ports: Sequence[int],
                       paths: Sequence[str]) -> Optional[ServerConfiguration]:
        """
        Return the first configuration whose REST and WebSocket probes both
        succeed, or None when the search space is exhausted.

        Each call starts fresh; nothing is remembered between runs.
        """
        self.logger.log('Starting automatic server detection...')

        for port, path, rest_url in self.rest_candidates(ports, paths):
            self.logger.log(f"Trying: {rest_url}", True)
            rest = await self.probe.probe_rest(rest_url, self.rest_timeout)
            if not rest:
                self.logger.log(f"Server not detected at: {rest_url}", True)
                continue

            self.logger.log(f"Server detected at: {rest_url}")
            for ws_url in self.ws_candidates(port, path):
                self.logger.log(f"Testing WebSocket at: {ws_url}", True)
                ws = await self.probe.probe_websocket(ws_url, self.ws_timeout)
                if ws:
                    self.logger.log(f"WebSocket available at: {ws_url}")
                    return ServerConfiguration(rest_url=rest_url, ws_url=ws_url)

        self.logger.log('No server configuration detected.')
        return None
