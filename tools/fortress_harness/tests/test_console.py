"""CommandConsole dispatch with a mocked orchestrator"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fortress_harness.config import HarnessConfig
from fortress_harness.console import CommandConsole
from fortress_harness.logger import HarnessLogger


def _scripted(lines):
    """Input function returning each line in turn, then end of input"""
    remaining = list(lines)

    async def read(prompt):
        return remaining.pop(0) if remaining else None

    return read


def _orchestrator():
    orchestrator = MagicMock()
    orchestrator.config = HarnessConfig()
    orchestrator.mock_mode = False
    orchestrator.simulation_active = False
    orchestrator.sessions = []
    orchestrator.check_server_status = AsyncMock(return_value={})
    orchestrator.broadcast_chat = AsyncMock(return_value=object())
    orchestrator.simulate_random_shot = AsyncMock(return_value=None)
    orchestrator.run_scan = AsyncMock(return_value=False)
    orchestrator.start_simulation = MagicMock(return_value=True)
    orchestrator.stop_simulation = AsyncMock(return_value=True)
    orchestrator.reconnect_player = AsyncMock(return_value=True)
    orchestrator.add_new_player = AsyncMock(return_value=None)
    orchestrator.reinitialize = AsyncMock(return_value=3)
    return orchestrator


def _console(orchestrator, lines=()):
    return CommandConsole(orchestrator, logger=HarnessLogger('console-test'),
                          input_func=_scripted(lines))


@pytest.mark.asyncio
async def test_chat_passes_full_text():
    orchestrator = _orchestrator()
    console = _console(orchestrator)

    assert await console.handle_line('chat Let us capture the point')

    orchestrator.broadcast_chat.assert_awaited_once_with('Let us capture the point')


@pytest.mark.asyncio
async def test_chat_without_text_sends_nothing():
    orchestrator = _orchestrator()
    assert await _console(orchestrator).handle_line('chat')
    orchestrator.broadcast_chat.assert_not_awaited()


@pytest.mark.asyncio
async def test_simple_commands_dispatch():
    orchestrator = _orchestrator()
    console = _console(orchestrator)

    for line in ('status', 'shoot', 'scan', 'start', 'stop', 'add', 'players', 'stats', 'help'):
        assert await console.handle_line(line)

    orchestrator.check_server_status.assert_awaited_once()
    orchestrator.simulate_random_shot.assert_awaited_once()
    orchestrator.run_scan.assert_awaited_once()
    orchestrator.start_simulation.assert_called_once()
    orchestrator.stop_simulation.assert_awaited_once()
    orchestrator.add_new_player.assert_awaited_once()


@pytest.mark.asyncio
async def test_reconnect_requires_numeric_id():
    orchestrator = _orchestrator()
    console = _console(orchestrator)

    assert await console.handle_line('reconnect abc')
    orchestrator.reconnect_player.assert_not_awaited()

    assert await console.handle_line('reconnect 2')
    orchestrator.reconnect_player.assert_awaited_once_with(2)


@pytest.mark.asyncio
async def test_unknown_and_blank_lines_continue():
    console = _console(_orchestrator())
    assert await console.handle_line('dance')
    assert await console.handle_line('   ')


@pytest.mark.asyncio
async def test_run_stops_on_exit():
    orchestrator = _orchestrator()
    console = _console(orchestrator, ['STATUS', 'exit', 'status'])

    await console.run()

    orchestrator.check_server_status.assert_awaited_once()
    assert not console.running


@pytest.mark.asyncio
async def test_run_stops_at_end_of_input():
    orchestrator = _orchestrator()
    console = _console(orchestrator, ['shoot'])

    await console.run()

    orchestrator.simulate_random_shot.assert_awaited_once()


@pytest.mark.asyncio
async def test_config_prompts_in_order():
    orchestrator = _orchestrator()
    console = _console(orchestrator, ['http://game:3000/api', '', '5', 'y', 'n'])

    assert await console.handle_line('config')

    orchestrator.reconfigure.assert_called_once_with(
        api_url='http://game:3000/api', ws_url=None, num_players=5, mock_mode=True
    )
    orchestrator.reinitialize.assert_not_awaited()


@pytest.mark.asyncio
async def test_config_invalid_count_keeps_current():
    orchestrator = _orchestrator()
    console = _console(orchestrator, ['', '', '42', '', 'y'])

    await console.handle_line('config')

    orchestrator.reconfigure.assert_called_once_with(
        api_url=None, ws_url=None, num_players=3, mock_mode=None
    )
    orchestrator.reinitialize.assert_awaited_once()
    assert orchestrator.config.server_supplied
