"""
Fortress Harness - Game server client harness

Simulates a handful of players against a team-shooter game server: finds the
server, registers and connects each player over REST and WebSocket, keeps them
alive with position heartbeats and generates random shots and chat. When no
server answers, the whole pool runs in local simulation mode.

Usage:
    # Interactive console
    python -m fortress_harness

    # Unattended run with a report
    python -m fortress_harness --duration 60 --report reports/harness.json

Exit Codes:
    0 - Normal shutdown
    1 - Unattended run ended with no live session
    130 - Interrupted
"""

__version__ = "1.0.0"
__author__ = "Fortress Dev Team"

from .client_session import ClientSession, ConnectionState, SessionStats
from .config import EndpointCandidate, HarnessConfig, ServerConfiguration
from .endpoint_probe import EndpointProbe, ProbeResult
from .errors import (
    ConnectError,
    HarnessError,
    MalformedInboundMessage,
    ProbeUnreachable,
    RegistrationFailed,
    SocketConnectFailed
)
from .server_discovery import ServerDiscovery
from .session_orchestrator import SessionOrchestrator

__all__ = [
    'ClientSession',
    'ConnectionState',
    'SessionStats',
    'EndpointCandidate',
    'HarnessConfig',
    'ServerConfiguration',
    'EndpointProbe',
    'ProbeResult',
    'ConnectError',
    'HarnessError',
    'MalformedInboundMessage',
    'ProbeUnreachable',
    'RegistrationFailed',
    'SocketConnectFailed',
    'ServerDiscovery',
    'SessionOrchestrator',
]
