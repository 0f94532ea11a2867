"""
Fortress Harness - Session orchestrator

Owns the pool of simulated players: resolves a server configuration, decides
whether to fall back to mock mode, connects the sessions and drives the
randomized simulation loop. The console calls into it for ad-hoc control.
"""

import asyncio
import json
import random
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from . import messages
from .client_session import ClientSession
from .config import HarnessConfig, ServerConfiguration, availability_candidates
from .endpoint_probe import EndpointProbe
from .errors import ConnectError
from .logger import HarnessLogger
from .server_discovery import ServerDiscovery
from .transport import HttpClient, WebSocketOpener, open_websocket


CHAT_LINES = [
    "Need a medic!",
    "Let's capture the point!",
    "Spy here!",
    "Engineer, we need a sentry!",
    "Good job, team!",
]

MOCK_DAMAGE_MIN = 10
MOCK_DAMAGE_MAX = 39


class SessionOrchestrator:
    """Manages the simulated players for one harness run"""

    def __init__(self, config: HarnessConfig, logger: Optional[HarnessLogger] = None,
                 http: Optional[HttpClient] = None,
                 ws_opener: WebSocketOpener = open_websocket,
                 rng: Optional[random.Random] = None):
        self.config = config
        self.logger = logger or HarnessLogger('SessionOrchestrator', debug=config.debug)
        self.http = http or HttpClient()
        self.ws_opener = ws_opener
        self.rng = rng or random.Random()

        self.probe = EndpointProbe(self.http, self.logger.child('EndpointProbe'), ws_opener)
        self.discovery = ServerDiscovery(
            self.probe,
            self.logger.child('ServerDiscovery'),
            host=config.discovery_host,
            rest_timeout=config.discovery_rest_timeout,
            ws_timeout=config.discovery_ws_timeout
        )

        self.sessions: List[ClientSession] = []
        self.mock_mode = config.mock_mode
        self.server_info: Any = None
        self.simulation_active = False
        self._simulation_task: Optional[asyncio.Task] = None
        self._closed = False

    # =========================================================================
    # Startup
    # =========================================================================

    async def initialize(self) -> int:
        """Resolve the server, connect the pool and return the live session count"""
        self.logger.log('Checking server...')

        if not self.mock_mode and not self.config.server_supplied:
            await self.run_scan()

        if not self.mock_mode and not await self.check_server_availability():
            self.logger.warning('Server is not reachable. Switching to local simulation mode.')
            self.mock_mode = True

        if not self.mock_mode:
            await self.get_server_info()

        return await self.connect_test_players()

    async def run_scan(self) -> bool:
        """Rediscover the server; the configuration is only replaced on success"""
        self.logger.log('Starting automatic server search...')
        found = await self.discovery.discover(self.config.discovery_ports,
                                              self.config.discovery_paths)
        if found is None:
            self.logger.log('Could not detect the server automatically.')
            return False

        self.config.server = found
        self.logger.log('Server configuration detected automatically:')
        self.logger.log(f"API URL: {found.rest_url}")
        self.logger.log(f"WebSocket URL: {found.ws_url}")
        return True

    async def check_server_availability(self) -> bool:
        """
        Check the configured REST URL, then the fallback endpoints. A reachable
        fallback replaces the configuration. Operator-supplied URLs are never
        swapped for a fallback.
        """
        server = self.config.server
        self.logger.log(f"Testing connection to server at {server.rest_url}...")
        result = await self.probe.probe_first(availability_candidates(server.rest_url),
                                              self.config.request_timeout)
        if result:
            self.logger.log(f"Connected to {result.url}, status: {result.status_code}", True)
            return True

        if self.config.server_supplied:
            return False

        for fallback in self.config.fallback_endpoints:
            self.logger.log(f"Trying fallback configuration: API {fallback.rest_url}, "
                            f"WS {fallback.ws_url}", True)
            if await self.probe.probe_rest(fallback.rest_url, self.config.request_timeout):
                self.logger.log(f"Connection succeeded with: {fallback.rest_url}", True)
                self.config.server = fallback
                return True
        return False

    async def get_server_info(self) -> Any:
        """Fetch <api>/server/info; failure is logged and ignored"""
        url = f"{self.config.server.rest_url.rstrip('/')}/server/info"
        self.logger.log(f"Fetching server information from {url}...")
        try:
            self.server_info = await self.http.get_json(url, self.config.request_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.log(f"Could not fetch server information: {e}", True)
            return None

        self.logger.log(f"Server information: {self.server_info}")
        return self.server_info

    def create_session(self, session_id: int, mock_mode: bool) -> ClientSession:
        return ClientSession(
            session_id,
            self.config,
            self.http,
            self.probe,
            self.logger.child(f"TestPlayer{session_id}"),
            mock_mode=mock_mode,
            ws_opener=self.ws_opener,
            rng=random.Random(self.rng.random())
        )

    async def _connect_all(self, sessions: List[ClientSession]) -> int:
        """Connect sessions one after another; returns how many went live"""
        connected = 0
        for session in sessions:
            try:
                await session.connect()
            except ConnectError as e:
                self.logger.error(f"Failed to connect test player #{session.id}", e)
                continue
            connected += 1
        return connected

    async def connect_test_players(self) -> int:
        """
        Connect the configured number of sessions. When none of the real
        connections succeed, the whole pool is rebuilt in mock mode.
        """
        count = self.config.num_test_players
        self.logger.log(f"Connecting {count} test players...")

        sessions = [self.create_session(i, self.mock_mode) for i in range(1, count + 1)]
        self.sessions.extend(sessions)
        connected = await self._connect_all(sessions)

        if connected == 0 and not self.mock_mode:
            self.logger.log('No player could connect. Switching to local simulation mode.')
            connected = await self.degrade_to_mock()

        mode = 'simulated' if self.mock_mode else 'connected'
        self.logger.log(f"{connected} of {count} players {mode} successfully")
        if self.mock_mode:
            self.logger.warning('RUNNING IN LOCAL SIMULATION MODE - '
                                'the server is not reachable, actions are simulated locally.')
        return connected

    async def degrade_to_mock(self) -> int:
        """Discard every session and rebuild the full pool in mock mode"""
        await self.disconnect_all()
        self.sessions.clear()
        self.mock_mode = True

        sessions = [self.create_session(i, True)
                    for i in range(1, self.config.num_test_players + 1)]
        self.sessions.extend(sessions)
        return await self._connect_all(sessions)

    # =========================================================================
    # Peer lookup and actions
    # =========================================================================

    def live_sessions(self) -> List[ClientSession]:
        return [s for s in self.sessions if s.connected]

    def find_session(self, session_id: int) -> Optional[ClientSession]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def get_random_player(self, exclude_id: Optional[int] = None) -> Optional[ClientSession]:
        """Uniform pick among connected sessions other than exclude_id"""
        eligible = [s for s in self.sessions if s.connected and s.id != exclude_id]
        if not eligible:
            return None
        return self.rng.choice(eligible)

    async def simulate_random_shot(self) -> Optional[Tuple[ClientSession, ClientSession]]:
        shooter = self.get_random_player()
        if shooter is None:
            return None
        target = self.get_random_player(shooter.id)
        if target is None:
            return None
        await shooter.simulate_shot(target)
        return shooter, target

    async def broadcast_chat(self, text: str) -> Optional[ClientSession]:
        """One connected session sends text to everyone"""
        for session in self.sessions:
            if session.connected:
                await session.send_chat_message(text)
                return session
        return None

    async def simulate_mock_damage(self) -> Optional[Tuple[ClientSession, ClientSession, int]]:
        """Inject a playerDamage event as the missing server would have sent it"""
        if not self.mock_mode:
            return None
        target = self.get_random_player()
        if target is None:
            return None
        source = self.get_random_player(target.id)
        if source is None:
            return None

        damage = self.rng.randint(MOCK_DAMAGE_MIN, MOCK_DAMAGE_MAX)
        self.logger.log(f"Simulation: {source.display_name} dealt {damage} damage "
                        f"to {target.display_name}")
        target.handle_server_message(
            messages.encode(messages.player_damage(damage, source.display_name))
        )
        return source, target, damage

    # =========================================================================
    # Simulation loop
    # =========================================================================

    def start_simulation(self) -> bool:
        if self._simulation_task is not None:
            return False
        self.simulation_active = True
        self._simulation_task = asyncio.create_task(self._simulation_loop())
        self.logger.log('Starting action simulation...')
        return True

    async def stop_simulation(self) -> bool:
        task, self._simulation_task = self._simulation_task, None
        self.simulation_active = False
        if task is None:
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.log('Simulation stopped')
        return True

    def next_tick_delay(self) -> float:
        jitter = self.config.simulation_jitter
        return self.config.simulation_interval * self.rng.uniform(1 - jitter, 1 + jitter)

    async def _simulation_loop(self) -> None:
        while self.simulation_active:
            await asyncio.sleep(self.next_tick_delay())
            try:
                await self.simulate_random_actions()
            except Exception as e:
                self.logger.error('Simulation tick failed', e)

    async def simulate_random_actions(self) -> None:
        """One simulation tick; each action rolls its own probability"""
        if self.rng.random() < self.config.shot_probability:
            await self.simulate_random_shot()

        if self.rng.random() < self.config.chat_probability:
            player = self.get_random_player()
            if player is not None:
                await player.send_chat_message(self.rng.choice(CHAT_LINES))

        if self.mock_mode and self.rng.random() < self.config.mock_damage_probability:
            await self.simulate_mock_damage()

    # =========================================================================
    # Operator actions
    # =========================================================================

    async def check_server_status(self) -> Dict[str, Any]:
        """Re-probe the configured REST and WebSocket endpoints"""
        server = self.config.server
        if self.mock_mode:
            self.logger.log('Running in simulation mode; sessions are not using the server.')

        self.logger.log('Checking server status...')
        rest = await self.probe.probe_first(availability_candidates(server.rest_url),
                                            self.config.request_timeout)
        if rest:
            self.logger.log(f"Server responding at {rest.url} with status: {rest.status_code}")
        else:
            self.logger.log('REST API is not responding on any known endpoint.')

        self.logger.log(f"Testing WebSocket connection at {server.ws_url}...")
        ws = await self.probe.probe_websocket(server.ws_url, self.config.socket_timeout)
        if ws:
            self.logger.log('WebSocket responding normally')
        else:
            self.logger.log('WebSocket is not responding')

        return {
            'rest': rest.url if rest else None,
            'websocket': bool(ws),
            'mock_mode': self.mock_mode
        }

    async def reconnect_player(self, session_id: int) -> bool:
        session = self.find_session(session_id)
        if session is None:
            self.logger.error(f"Player with ID {session_id} not found")
            return False

        self.logger.log(f"Trying to reconnect player {session.display_name}...")
        try:
            await session.connect()
        except ConnectError as e:
            self.logger.error(f"Failed to reconnect player {session.display_name}", e)
            return False
        self.logger.log(f"Player {session.display_name} reconnected successfully")
        return True

    async def add_new_player(self) -> Optional[ClientSession]:
        new_id = max((s.id for s in self.sessions), default=0) + 1
        session = self.create_session(new_id, self.mock_mode)
        self.logger.log(f"Adding new player #{new_id}...")
        try:
            await session.connect()
        except ConnectError as e:
            self.logger.error(f"Failed to add new player #{new_id}", e)
            await session.disconnect()
            return None

        self.sessions.append(session)
        self.logger.log(f"Player {session.display_name} added successfully")
        return session

    def reconfigure(self, api_url: Optional[str] = None, ws_url: Optional[str] = None,
                    num_players: Optional[int] = None,
                    mock_mode: Optional[bool] = None) -> ServerConfiguration:
        """Replace the configuration; live sessions keep theirs until they reconnect"""
        current = self.config.server
        if api_url or ws_url:
            self.config.server = ServerConfiguration(api_url or current.rest_url,
                                                     ws_url or current.ws_url)
            self.config.server_supplied = True
        if num_players is not None:
            self.config.num_test_players = num_players
        if mock_mode is not None:
            # The running pool keeps its mode until reinitialize rebuilds it
            self.config.mock_mode = mock_mode
        return self.config.server

    async def reinitialize(self) -> int:
        """Tear the pool down and build it again with the current configuration"""
        await self.stop_simulation()
        await self.disconnect_all()
        self.sessions.clear()
        self.mock_mode = self.config.mock_mode
        return await self.initialize()

    # =========================================================================
    # Reporting and shutdown
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        sessions = [s.get_stats() for s in self.sessions]
        return {
            'timestamp': datetime.now().isoformat(),
            'server': self.config.server.to_dict(),
            'mock_mode': self.mock_mode,
            'sessions_total': len(sessions),
            'sessions_connected': len(self.live_sessions()),
            'messages_sent': sum(s['messages_sent'] for s in sessions),
            'messages_received': sum(s['messages_received'] for s in sessions),
            'messages_dropped': sum(s['messages_dropped'] for s in sessions),
            'eliminations': sum(s['eliminations'] for s in sessions),
            'sessions': sessions
        }

    def log_summary(self) -> None:
        stats = self.get_stats()
        self.logger.log("=" * 60)
        self.logger.log("HARNESS SESSION SUMMARY")
        self.logger.log("=" * 60)
        self.logger.log(f"Server: {stats['server']['rest_url']} | {stats['server']['ws_url']}")
        self.logger.log(f"Mode: {'mock' if stats['mock_mode'] else 'live'}")
        self.logger.log(f"Sessions connected: {stats['sessions_connected']}/{stats['sessions_total']}")
        self.logger.log(f"Messages sent: {stats['messages_sent']:,}")
        self.logger.log(f"Messages received: {stats['messages_received']:,}")
        self.logger.log(f"Messages dropped: {stats['messages_dropped']:,}")
        self.logger.log(f"Eliminations: {stats['eliminations']}")
        self.logger.log("=" * 60)

    def write_report(self, path: str) -> Path:
        """Write the statistics as JSON"""
        report_path = Path(path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with report_path.open('w', encoding='utf-8') as handle:
            json.dump(self.get_stats(), handle, indent=2)
        self.logger.log(f"Report written to {report_path}")
        return report_path

    async def disconnect_all(self) -> None:
        if self.sessions:
            await asyncio.gather(*(s.disconnect() for s in self.sessions),
                                 return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop the simulation, disconnect every session and close HTTP. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.stop_simulation()
        self.logger.log('Disconnecting players...')
        await self.disconnect_all()
        await self.http.close()
        self.logger.log('Test finished')
