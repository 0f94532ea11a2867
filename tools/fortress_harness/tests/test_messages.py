"""Wire message decoding and builders"""

import json

import pytest

from fortress_harness import messages
from fortress_harness.errors import MalformedInboundMessage
from fortress_harness.messages import Vector3


def test_parse_game_state():
    message = messages.parse_inbound(json.dumps({'type': 'gameState', 'data': {'tick': 4}}))
    assert message.type == 'gameState'
    assert message.data == {'tick': 4}


def test_parse_bytes_frame():
    message = messages.parse_inbound(b'{"type": "pointCaptured", "data": {"pointId": 2}}')
    assert message.type == 'pointCaptured'


def test_missing_data_becomes_empty():
    assert messages.parse_inbound('{"type": "gameState"}').data == {}


@pytest.mark.parametrize('raw', [
    'not json',
    '[1, 2, 3]',
    '{"data": {}}',
    '{"type": 5}',
    '{"type": "playerDamage", "data": "lots"}',
])
def test_malformed_frames(raw):
    with pytest.raises(MalformedInboundMessage):
        messages.parse_inbound(raw)


def test_damage_amount_rejects_non_numbers():
    message = messages.parse_inbound('{"type": "playerDamage", "data": {"damage": "ten"}}')
    with pytest.raises(MalformedInboundMessage):
        messages.damage_amount(message)

    message = messages.parse_inbound('{"type": "playerDamage", "data": {"damage": true}}')
    with pytest.raises(MalformedInboundMessage):
        messages.damage_amount(message)


def test_normalized_zero_vector():
    assert Vector3(0, 0, 0).normalized() == Vector3(0, 0, 0)


def test_normalized_unit_length():
    direction = Vector3(3, 0, 4).normalized()
    assert direction.x == pytest.approx(0.6)
    assert direction.z == pytest.approx(0.8)


def test_shoot_action_shape():
    message = messages.shoot_action('p2', 20, Vector3(1, 0, 1), Vector3(1, 0, 0))
    assert message['type'] == 'playerAction'
    assert message['action'] == 'shoot'
    assert message['data']['targetId'] == 'p2'
    assert message['data']['direction'] == {'x': 1, 'y': 0, 'z': 0}


def test_player_update_shape():
    message = messages.player_update(Vector3(1, 2, 3), 80)
    assert message == {
        'type': 'playerUpdate',
        'data': {'position': {'x': 1, 'y': 2, 'z': 3}, 'health': 80, 'ammo': 100}
    }


@pytest.mark.parametrize('raw', [
    '{"type": "playerDamage", "data": {"damage": NaN}}',
    '{"type": "playerDamage", "data": {"damage": Infinity}}',
    '{"type": "playerDamage", "data": {"damage": -Infinity}}',
])
def test_damage_amount_rejects_non_finite(raw):
    message = messages.parse_inbound(raw)
    with pytest.raises(MalformedInboundMessage):
        messages.damage_amount(message)
