"""
Fortress Harness - Client session

One simulated player. Owns its socket, heartbeat and reader tasks and walks the
connection state machine:

    Idle -> CheckingHealth -> Registering -> ConnectingSocket -> Connected
    Connected -> Disconnected               (socket closed, send failure, disconnect)
    Idle -> Mock                            (mock mode, no network at all)

Health-check and socket exhaustion raise ConnectError and leave the session
Disconnected. Registration failures never abort a connect: the session falls
back to a locally generated id.
"""

import asyncio
import random
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import aiohttp
from websockets.exceptions import ConnectionClosed

from . import messages
from .config import (
    HarnessConfig, ServerConfiguration,
    health_candidates, registration_candidates, websocket_candidates
)
from .endpoint_probe import EndpointProbe
from .errors import ConnectError, MalformedInboundMessage, RegistrationFailed, SocketConnectFailed
from .logger import HarnessLogger
from .messages import InboundMessage, Vector3
from .transport import HttpClient, WebSocketOpener, open_websocket


PLAYER_CLASSES = ['Scout', 'Soldier', 'Pyro', 'Demoman', 'Heavy',
                  'Engineer', 'Medic', 'Sniper', 'Spy']
TEAM_RED = 'RED'
TEAM_BLU = 'BLU'

FULL_HEALTH = 100
HEARTBEAT_AMMO = 100
SHOT_DAMAGE = 20
WALK_STEP = 5.0        # max displacement per heartbeat on x and z
MAP_EXTENT = 1000.0    # spawn positions are drawn from [0, MAP_EXTENT)


class ConnectionState(Enum):
    IDLE = "Idle"
    CHECKING_HEALTH = "CheckingHealth"
    REGISTERING = "Registering"
    CONNECTING_SOCKET = "ConnectingSocket"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"
    MOCK = "Mock"


LIVE_STATES = (ConnectionState.CONNECTED, ConnectionState.MOCK)


@dataclass
class SessionStats:
    """Per-session traffic counters"""
    messages_sent: int = 0
    messages_received: int = 0
    messages_dropped: int = 0
    malformed_messages: int = 0
    damage_taken: float = 0.0
    eliminations: int = 0
    socket_url: Optional[str] = None
    connection_time: Optional[float] = None
    disconnection_time: Optional[float] = None

    def session_duration(self) -> float:
        if not self.connection_time:
            return 0.0
        end = self.disconnection_time or time.time()
        return end - self.connection_time


class ClientSession:
    """A simulated player connected (or pretending to be) to the game server"""

    def __init__(self, session_id: int, config: HarnessConfig, http: HttpClient,
                 probe: EndpointProbe, logger: HarnessLogger, mock_mode: bool = False,
                 ws_opener: WebSocketOpener = open_websocket,
                 rng: Optional[random.Random] = None):
        self.id = session_id
        self.display_name = f"TestPlayer{session_id}"
        self.config = config
        self.http = http
        self.probe = probe
        self.logger = logger
        self.mock_mode = mock_mode
        self.ws_opener = ws_opener
        self.rng = rng or random.Random()

        self.team = TEAM_RED if session_id % 2 == 0 else TEAM_BLU
        self.player_class = self.rng.choice(PLAYER_CLASSES)
        self.position = Vector3(self.rng.random() * MAP_EXTENT, 0.0,
                                self.rng.random() * MAP_EXTENT)
        self.health: float = FULL_HEALTH

        self.state = ConnectionState.IDLE
        self.state_history: List[ConnectionState] = [ConnectionState.IDLE]
        self.player_id: Optional[str] = None
        self.connected = False
        self.server: Optional[ServerConfiguration] = None
        self.stats = SessionStats()

        self._socket: Any = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<ClientSession {self.id} {self.display_name} {self.state.value}>"

    @property
    def heartbeat_handle(self) -> Optional[asyncio.Task]:
        return self._heartbeat_task

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.logger.log(f"{self.display_name}: {self.state.value} -> {state.value}", True)
        self.state = state
        self.state_history.append(state)

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """
        Run the connection state machine to completion.

        Returns True once the session is Connected (or Mock). Raises
        ConnectError when the health check or every WebSocket candidate fails.
        """
        if self.connected or self._socket is not None or self._heartbeat_task is not None:
            await self.disconnect()

        if self.mock_mode:
            self.player_id = f"mock_player_{self.id}"
            self.connected = True
            self.stats.connection_time = time.time()
            self.stats.disconnection_time = None
            self._set_state(ConnectionState.MOCK)
            self._start_heartbeat()
            self.logger.log(f"Player {self.display_name} connected in mock mode")
            return True

        # Configuration is read once per attempt; later rescans do not affect it
        server = self.config.server
        self.server = server
        self.logger.log(f"Connecting player {self.display_name}...")

        self._set_state(ConnectionState.CHECKING_HEALTH)
        if not await self.check_server_health(server):
            self._set_state(ConnectionState.DISCONNECTED)
            raise ConnectError(ConnectError.UNREACHABLE,
                               f"Server is not reachable at {server.rest_url}")

        self._set_state(ConnectionState.REGISTERING)
        await self.register_player(server)

        self._set_state(ConnectionState.CONNECTING_SOCKET)
        try:
            await self.connect_websocket(server)
        except ConnectError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        return True

    async def check_server_health(self, server: ServerConfiguration) -> bool:
        """True when any health candidate answers"""
        result = await self.probe.probe_first(health_candidates(server.rest_url),
                                              self.config.request_timeout)
        if result is None:
            return False
        self.logger.log(f"Server reachable via {result.url}", True)
        return True

    async def register_player(self, server: ServerConfiguration) -> bool:
        """
        Register with the first registration endpoint that accepts us.

        Falls back to fallback_player_<id> when all of them fail; returns
        whether a server-assigned id was obtained.
        """
        for endpoint in registration_candidates(server.rest_url):
            self.logger.log(f"Trying to register player at: {endpoint}", True)
            try:
                body = await self._register_at(endpoint)
            except RegistrationFailed as e:
                self.logger.log(f"Registration failed at {endpoint}: {e}", True)
                continue

            self.player_id = self._assigned_id(body)
            self.logger.log(f"Player {self.display_name} registered with ID: {self.player_id}")
            return True

        self.player_id = f"fallback_player_{self.id}"
        self.logger.log(f"Using fallback ID: {self.player_id}")
        return False

    async def _register_at(self, endpoint: str) -> Any:
        payload = {
            'username': self.display_name,
            'playerClass': self.player_class,
            'team': self.team
        }
        try:
            return await self.http.post_json(endpoint, payload, self.config.request_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            raise RegistrationFailed(str(e) or type(e).__name__) from e

    def _assigned_id(self, body: Any) -> str:
        if isinstance(body, dict):
            for key in ('playerId', 'id'):
                value = body.get(key)
                if value not in (None, ''):
                    return str(value)
        return f"player_{self.id}"

    def socket_candidates(self, server: ServerConfiguration) -> Iterator[str]:
        """Ordered WebSocket URLs for this player; consumed one attempt at a time"""
        return iter(websocket_candidates(server, self.player_id or f"player_{self.id}"))

    async def connect_websocket(self, server: ServerConfiguration) -> str:
        """Open the first WebSocket candidate that completes its handshake in time"""
        for url in self.socket_candidates(server):
            self.logger.log(f"Trying WebSocket at: {url}", True)
            try:
                connection = await self._open_socket(url)
            except SocketConnectFailed as e:
                self.logger.log(f"WebSocket error for {self.display_name}: {e}", True)
                continue

            self._socket = connection
            self.connected = True
            self.stats.socket_url = url
            self.stats.connection_time = time.time()
            self.stats.disconnection_time = None
            self._set_state(ConnectionState.CONNECTED)
            self._reader_task = asyncio.create_task(self._read_loop(connection))
            self._start_heartbeat()
            self.logger.log(f"WebSocket connection established for {self.display_name} at {url}")
            return url

        raise ConnectError(ConnectError.SOCKET_UNREACHABLE,
                           'All WebSocket connection attempts failed')

    async def _open_socket(self, url: str) -> Any:
        try:
            return await self.ws_opener(url, self.config.socket_timeout)
        except asyncio.TimeoutError as e:
            raise SocketConnectFailed(url, 'timed out') from e
        except Exception as e:
            raise SocketConnectFailed(url, str(e) or type(e).__name__) from e

    async def _read_loop(self, connection: Any) -> None:
        """Background task delivering inbound frames until the socket closes"""
        try:
            async for raw in connection:
                self.handle_server_message(raw)
        except ConnectionClosed as e:
            self.logger.log(f"Socket for {self.display_name} closed: {e}", True)
        except OSError as e:
            self.logger.log(f"Socket error for {self.display_name}: {e}", True)
        finally:
            if self._socket is connection:
                self._on_socket_closed()

    def _on_socket_closed(self) -> None:
        self.logger.log(f"Connection closed for {self.display_name}")
        self._socket = None
        self._reader_task = None
        self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        self.connected = False
        self.stats.disconnection_time = time.time()
        self._stop_heartbeat()
        self._set_state(ConnectionState.DISCONNECTED)

    async def disconnect(self) -> None:
        """Cancel timers, close the socket and move to Disconnected. Idempotent."""
        heartbeat = self._stop_heartbeat()
        reader, self._reader_task = self._reader_task, None
        connection, self._socket = self._socket, None
        was_live = self.connected
        self.connected = False

        current = asyncio.current_task()
        for task in (heartbeat, reader):
            if task is None or task is current:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if connection is not None:
            try:
                await connection.close()
            except (ConnectionClosed, OSError) as e:
                self.logger.error(f"Error disconnecting {self.display_name}", e)
            self.logger.log(f"Player {self.display_name} disconnected")

        if was_live:
            self.stats.disconnection_time = time.time()
        if self.state is not ConnectionState.IDLE:
            self._set_state(ConnectionState.DISCONNECTED)

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> Optional[asyncio.Task]:
        """Clear the heartbeat handle and cancel it; returns the cancelled task"""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    async def _heartbeat_loop(self) -> None:
        me = asyncio.current_task()
        while self._heartbeat_task is me:
            await asyncio.sleep(self.config.heartbeat_interval)
            if self._heartbeat_task is not me:
                return
            if not self.connected:
                self._heartbeat_task = None
                return
            await self.send_position()

    async def send_position(self) -> bool:
        """Perturb the simulated position and send a playerUpdate"""
        self.position.x += (self.rng.random() - 0.5) * WALK_STEP
        self.position.z += (self.rng.random() - 0.5) * WALK_STEP
        return await self.send_message(
            messages.player_update(self.position, self.health, HEARTBEAT_AMMO)
        )

    # =========================================================================
    # Outbound
    # =========================================================================

    async def send_message(self, message: Dict[str, Any]) -> bool:
        """
        Send a JSON message. Dropped (returns False) when the session is not
        connected; a failed send marks the session disconnected.
        """
        if not self.connected:
            self.stats.messages_dropped += 1
            return False

        if self.mock_mode:
            self.logger.log(f"[MOCK] {self.display_name} sent: {messages.encode(message)}", True)
            self.stats.messages_sent += 1
            return True

        if self._socket is None:
            self.stats.messages_dropped += 1
            self._mark_disconnected()
            return False

        try:
            await self._socket.send(messages.encode(message))
        except (ConnectionClosed, OSError) as e:
            self.logger.error(f"Error sending message for {self.display_name}", e)
            self.stats.messages_dropped += 1
            self._mark_disconnected()
            return False

        self.stats.messages_sent += 1
        return True

    async def simulate_shot(self, target: Optional['ClientSession']) -> bool:
        """Fire at target; no-op when there is no target"""
        if target is None:
            return False

        self.logger.log(f"{self.display_name} shooting at {target.display_name}")
        delta = Vector3(target.position.x - self.position.x, 0.0,
                        target.position.z - self.position.z)
        message = messages.shoot_action(
            target_id=target.player_id,
            damage=SHOT_DAMAGE,
            position=self.position.copy(),
            direction=delta.normalized()
        )
        return await self.send_message(message)

    async def send_chat_message(self, text: str) -> bool:
        sent = await self.send_message(messages.chat_message(text))
        if sent:
            self.logger.log(f"{self.display_name} sent message: {text}")
        return sent

    # =========================================================================
    # Inbound
    # =========================================================================

    def handle_server_message(self, raw: Any) -> Optional[InboundMessage]:
        """Decode and dispatch one frame; malformed frames are logged and dropped"""
        if self.state not in LIVE_STATES:
            self.logger.log(f"{self.display_name} ignored a message while {self.state.value}", True)
            return None

        self.stats.messages_received += 1
        try:
            message = messages.parse_inbound(raw)
            self._dispatch(message)
        except MalformedInboundMessage as e:
            self.stats.malformed_messages += 1
            self.logger.error(f"Error processing message for {self.display_name}", e)
            return None
        return message

    def _dispatch(self, message: InboundMessage) -> None:
        if message.type == messages.GAME_STATE:
            self.logger.log(f"{self.display_name} received game state update", True)
        elif message.type == messages.PLAYER_DAMAGE:
            damage = messages.damage_amount(message)
            source = message.data.get('sourcePlayer')
            self.logger.log(f"{self.display_name} took {damage} damage from {source}")
            self.apply_damage(damage)
        elif message.type == messages.CHAT_MESSAGE:
            sender = message.data.get('sender') or self.display_name
            self.logger.log(f"Chat: {sender}: {message.data.get('message')}")
        elif message.type == messages.POINT_CAPTURED:
            self.logger.log(f"Point {message.data.get('pointId')} captured by team "
                            f"{message.data.get('team')}")
        else:
            self.logger.log(f"{self.display_name} received message: {message.type}", True)

    def apply_damage(self, damage: float) -> bool:
        """
        Subtract damage from local health. Returns True on elimination.

        Simplification: elimination is predicted locally and the player
        respawns at full health right away. The server may hold a different
        health value; this harness does not reconcile the two.
        """
        self.health -= damage
        self.stats.damage_taken += damage
        if self.health <= 0:
            self.logger.log(f"{self.display_name} was eliminated!")
            self.stats.eliminations += 1
            self.health = FULL_HEALTH
            return True
        return False

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get session statistics"""
        stats = asdict(self.stats)
        stats.update({
            'id': self.id,
            'display_name': self.display_name,
            'player_id': self.player_id,
            'team': self.team,
            'player_class': self.player_class,
            'state': self.state.value,
            'connected': self.connected,
            'health': self.health,
            'duration_seconds': self.stats.session_duration(),
        })
        return stats
