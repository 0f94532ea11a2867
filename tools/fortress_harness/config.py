"""
Fortress Harness - Configuration

Server endpoint types, harness settings and the ordered candidate lists every
component walks through when looking for a live endpoint.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit


# Defaults from the game server's development setup
DEFAULT_API_URL = 'http://localhost:5500/api'
DEFAULT_WS_URL = 'ws://localhost:5500/game'
DEFAULT_PLAYER_COUNT = 3
MAX_PLAYER_COUNT = 10

DISCOVERY_PORTS = [5500, 3000, 8080, 4000, 9000]
DISCOVERY_PATHS = ['', '/api', '/game', '/tf2clone']
DISCOVERY_WS_PATHS = ['/game', '/socket', '/ws']

ENV_PREFIX = 'FORTRESS_'


@dataclass(frozen=True)
class EndpointCandidate:
    """A REST base URL paired with the WebSocket URL served next to it"""
    rest_url: str
    ws_url: str

    def to_dict(self) -> Dict[str, str]:
        return {'rest_url': self.rest_url, 'ws_url': self.ws_url}


# The winning candidate; replaced as a whole, never edited in place
ServerConfiguration = EndpointCandidate


def _default_fallbacks() -> List[EndpointCandidate]:
    return [
        EndpointCandidate('http://localhost:5500', 'ws://localhost:5500'),
        EndpointCandidate('http://localhost:5500/api', 'ws://localhost:5500/ws'),
        EndpointCandidate('http://localhost:5500/api', 'ws://localhost:5500/socket'),
        EndpointCandidate('http://localhost:3000/api', 'ws://localhost:3000/game'),
    ]


@dataclass
class HarnessConfig:
    """Settings for one harness run"""
    server: ServerConfiguration = field(
        default_factory=lambda: ServerConfiguration(DEFAULT_API_URL, DEFAULT_WS_URL)
    )
    num_test_players: int = DEFAULT_PLAYER_COUNT
    mock_mode: bool = False
    debug: bool = True

    # Set when the operator supplied URLs; skips discovery at startup
    server_supplied: bool = False
    fallback_endpoints: List[EndpointCandidate] = field(default_factory=_default_fallbacks)

    # Timeouts (seconds)
    request_timeout: float = 3.0
    socket_timeout: float = 3.0
    discovery_rest_timeout: float = 2.0
    discovery_ws_timeout: float = 2.0

    # Discovery search space
    discovery_host: str = 'localhost'
    discovery_ports: List[int] = field(default_factory=lambda: list(DISCOVERY_PORTS))
    discovery_paths: List[str] = field(default_factory=lambda: list(DISCOVERY_PATHS))

    # Session simulation
    heartbeat_interval: float = 0.1
    simulation_interval: float = 2.0
    simulation_jitter: float = 0.25
    shot_probability: float = 0.2
    chat_probability: float = 0.05
    mock_damage_probability: float = 0.1

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'HarnessConfig':
        """Build a config with FORTRESS_* environment overrides applied"""
        env = os.environ if env is None else env
        config = cls()

        api_url = env.get(f'{ENV_PREFIX}API_URL')
        ws_url = env.get(f'{ENV_PREFIX}WS_URL')
        if api_url or ws_url:
            config.server = ServerConfiguration(
                api_url or config.server.rest_url,
                ws_url or config.server.ws_url
            )
            config.server_supplied = True

        players = env.get(f'{ENV_PREFIX}PLAYERS')
        if players:
            config.num_test_players = parse_player_count(players, config.num_test_players)

        if f'{ENV_PREFIX}MOCK' in env:
            config.mock_mode = _env_flag(env[f'{ENV_PREFIX}MOCK'])
        if f'{ENV_PREFIX}DEBUG' in env:
            config.debug = _env_flag(env[f'{ENV_PREFIX}DEBUG'])
        return config


def _env_flag(raw: str) -> bool:
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on', 'y'}


def parse_player_count(raw: str, current: int) -> int:
    """Parse an operator-entered player count; invalid input keeps the current value"""
    try:
        value = int(str(raw).strip())
    except ValueError:
        return current
    if 0 < value <= MAX_PLAYER_COUNT:
        return value
    return current


# =============================================================================
# Candidate URL lists
# =============================================================================

def root_url(api_url: str) -> str:
    """Server root: the REST URL with everything from its /api segment removed"""
    parts = urlsplit(api_url.rstrip('/'))
    path = parts.path
    index = path.find('/api')
    if index >= 0:
        path = path[:index]
    return urlunsplit((parts.scheme, parts.netloc, path, '', '')).rstrip('/')


def ws_root_url(api_url: str) -> str:
    """WebSocket equivalent of the server root (http -> ws, https -> wss)"""
    root = root_url(api_url)
    if root.startswith('https'):
        return 'wss' + root[len('https'):]
    if root.startswith('http'):
        return 'ws' + root[len('http'):]
    return root


def health_candidates(api_url: str) -> List[str]:
    api = api_url.rstrip('/')
    root = root_url(api)
    return [
        f"{api}/health",
        f"{api}/status",
        f"{root}/health",
        f"{root}/status",
        root,
    ]


def availability_candidates(api_url: str) -> List[str]:
    api = api_url.rstrip('/')
    return [api, f"{api}/health", f"{api}/status", root_url(api)]


def registration_candidates(api_url: str) -> List[str]:
    api = api_url.rstrip('/')
    root = root_url(api)
    return [
        f"{api}/players/register",
        f"{api}/player/register",
        f"{api}/register",
        f"{root}/api/players/register",
    ]


def websocket_candidates(server: ServerConfiguration, player_id: str) -> List[str]:
    ws = server.ws_url.rstrip('/')
    ws_root = ws_root_url(server.rest_url)
    return [
        f"{ws}?id={player_id}",
        f"{ws}/{player_id}",
        ws,
        f"{ws_root}/game?id={player_id}",
        f"{ws_root}/ws?id={player_id}",
        f"{ws_root}/socket?id={player_id}",
    ]
