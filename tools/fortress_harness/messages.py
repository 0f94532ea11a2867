"""
Fortress Harness - Wire messages

JSON message shapes exchanged with the game server. Game-rule values (damage,
team, class) are carried as opaque data.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import MalformedInboundMessage


# Inbound message types
GAME_STATE = 'gameState'
PLAYER_DAMAGE = 'playerDamage'
CHAT_MESSAGE = 'chatMessage'
POINT_CAPTURED = 'pointCaptured'

# Outbound message types
PLAYER_UPDATE = 'playerUpdate'
PLAYER_ACTION = 'playerAction'
ACTION_SHOOT = 'shoot'


@dataclass
class Vector3:
    """Simple 3D vector class"""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def copy(self) -> 'Vector3':
        return Vector3(self.x, self.y, self.z)

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalized(self) -> 'Vector3':
        length = self.length()
        if length == 0:
            return Vector3()
        return Vector3(self.x / length, self.y / length, self.z / length)

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'z': self.z}


@dataclass
class InboundMessage:
    """A decoded server frame"""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    raw: Optional[str] = None


def parse_inbound(raw: Any) -> InboundMessage:
    """
    Decode a server frame into an InboundMessage.

    Raises MalformedInboundMessage for undecodable JSON, non-object payloads
    and frames without a string type.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedInboundMessage(f"Frame is not UTF-8: {e}") from e

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedInboundMessage(f"Invalid JSON: {e}", raw=raw) from e

    if not isinstance(payload, dict):
        raise MalformedInboundMessage("Message is not a JSON object", raw=raw)

    message_type = payload.get('type')
    if not isinstance(message_type, str):
        raise MalformedInboundMessage("Message has no type", raw=raw)

    data = payload.get('data')
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedInboundMessage(f"{message_type} data is not an object", raw=raw)

    return InboundMessage(type=message_type, data=data, raw=raw)


def damage_amount(message: InboundMessage) -> float:
    """Numeric damage of a playerDamage message"""
    damage = message.data.get('damage')
    if (isinstance(damage, bool) or not isinstance(damage, (int, float))
            or (isinstance(damage, float) and not math.isfinite(damage))):
        raise MalformedInboundMessage(f"Invalid damage value: {damage!r}", raw=message.raw)
    return damage


# =============================================================================
# Outbound builders
# =============================================================================

def player_update(position: Vector3, health: float, ammo: int = 100) -> Dict[str, Any]:
    return {
        'type': PLAYER_UPDATE,
        'data': {
            'position': position.to_dict(),
            'health': health,
            'ammo': ammo
        }
    }


def shoot_action(target_id: Optional[str], damage: int, position: Vector3,
                 direction: Vector3) -> Dict[str, Any]:
    return {
        'type': PLAYER_ACTION,
        'action': ACTION_SHOOT,
        'data': {
            'targetId': target_id,
            'damage': damage,
            'position': position.to_dict(),
            'direction': direction.to_dict()
        }
    }


def chat_message(text: str) -> Dict[str, Any]:
    return {'type': CHAT_MESSAGE, 'data': {'message': text}}


def player_damage(damage: int, source_player: str) -> Dict[str, Any]:
    """Server-side damage event, used to feed sessions in mock mode"""
    return {'type': PLAYER_DAMAGE, 'data': {'damage': damage, 'sourcePlayer': source_player}}


def encode(message: Dict[str, Any]) -> str:
    return json.dumps(message)
