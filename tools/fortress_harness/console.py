"""
Fortress Harness - Operator console

Line-oriented command loop. Stdin is read on a worker thread so heartbeats and
the simulation keep running while the console waits for input.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from .config import MAX_PLAYER_COUNT, parse_player_count
from .logger import HarnessLogger
from .session_orchestrator import SessionOrchestrator


# prompt -> line, or None at end of input
InputFunc = Callable[[str], Awaitable[Optional[str]]]

COMMANDS = [
    ('status', 'Check server status'),
    ('chat <text>', 'Send a chat message'),
    ('shoot', 'Simulate a random shot'),
    ('players', 'List connected players'),
    ('scan', 'Search for the server automatically'),
    ('start', 'Start the action simulation'),
    ('stop', 'Stop the action simulation'),
    ('config', 'Configure server parameters'),
    ('reconnect <id>', 'Reconnect a specific player'),
    ('add', 'Add a new player'),
    ('stats', 'Show per-player message statistics'),
    ('exit', 'Finish the test'),
    ('help', 'Show this list of commands'),
]


async def read_line(prompt: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


def _is_yes(answer: Optional[str]) -> bool:
    return (answer or '').strip().lower() in ('y', 'yes')


class CommandConsole:
    """Dispatches operator commands to a SessionOrchestrator"""

    def __init__(self, orchestrator: SessionOrchestrator,
                 logger: Optional[HarnessLogger] = None,
                 input_func: InputFunc = read_line):
        self.orchestrator = orchestrator
        self.logger = logger or orchestrator.logger.child('Console')
        self.input_func = input_func
        self.running = False

        self._handlers: Dict[str, Callable[[List[str], str], Awaitable[bool]]] = {
            'status': self.cmd_status,
            'chat': self.cmd_chat,
            'shoot': self.cmd_shoot,
            'players': self.cmd_players,
            'scan': self.cmd_scan,
            'start': self.cmd_start,
            'stop': self.cmd_stop,
            'config': self.cmd_config,
            'reconnect': self.cmd_reconnect,
            'add': self.cmd_add,
            'stats': self.cmd_stats,
            'exit': self.cmd_exit,
            'help': self.cmd_help,
        }

    def show_commands(self) -> None:
        self.logger.log('Available commands:')
        for name, description in COMMANDS:
            self.logger.log(f"  {name:<16} - {description}")

    async def run(self) -> None:
        """Read and dispatch commands until exit or end of input"""
        self.running = True
        self.show_commands()
        while self.running:
            line = await self.input_func('> ')
            if line is None:
                self.running = False
                break
            self.running = await self.handle_line(line)

    async def handle_line(self, line: str) -> bool:
        """Dispatch one input line; returns False when the console should stop"""
        stripped = line.strip()
        if not stripped:
            return True

        command, _, rest = stripped.partition(' ')
        handler = self._handlers.get(command.lower())
        if handler is None:
            self.logger.log("Unknown command. Type 'help' to see available commands.")
            return True
        return await handler(rest.split(), rest.strip())

    # =========================================================================
    # Commands
    # =========================================================================

    async def cmd_status(self, args: List[str], text: str) -> bool:
        await self.orchestrator.check_server_status()
        return True

    async def cmd_chat(self, args: List[str], text: str) -> bool:
        if not text:
            self.logger.log('Usage: chat <text>')
            return True
        if await self.orchestrator.broadcast_chat(text) is None:
            self.logger.log('No players connected to send messages.')
        return True

    async def cmd_shoot(self, args: List[str], text: str) -> bool:
        if await self.orchestrator.simulate_random_shot() is None:
            self.logger.log('Need at least two connected players to shoot.')
        return True

    async def cmd_players(self, args: List[str], text: str) -> bool:
        sessions = self.orchestrator.sessions
        self.logger.log(f"Players ({len(sessions)}):")
        for session in sessions:
            status = 'Connected' if session.connected else 'Disconnected'
            self.logger.log(f"  #{session.id} {session.display_name} ({session.player_class}, "
                            f"Team {session.team}) - {status}, Health: {session.health}")
        return True

    async def cmd_scan(self, args: List[str], text: str) -> bool:
        if await self.orchestrator.run_scan():
            self.logger.log("Use 'config' and reconnect to apply the new configuration to players.")
        return True

    async def cmd_start(self, args: List[str], text: str) -> bool:
        if not self.orchestrator.start_simulation():
            self.logger.log('Simulation is already running.')
        return True

    async def cmd_stop(self, args: List[str], text: str) -> bool:
        if not await self.orchestrator.stop_simulation():
            self.logger.log('Simulation is not running.')
        return True

    async def _ask(self, prompt: str) -> str:
        answer = await self.input_func(prompt)
        return (answer or '').strip()

    async def cmd_config(self, args: List[str], text: str) -> bool:
        """Prompt for new settings and optionally rebuild the pool with them"""
        config = self.orchestrator.config
        self.logger.log('Server configuration (empty input keeps the current value)')

        api_url = await self._ask(f"REST API URL [{config.server.rest_url}]: ")
        ws_url = await self._ask(f"WebSocket URL [{config.server.ws_url}]: ")
        count = await self._ask(f"Number of test players (1-{MAX_PLAYER_COUNT}) "
                                f"[{config.num_test_players}]: ")
        mock = await self._ask(f"Use simulation mode? (y/n) "
                               f"[{'y' if self.orchestrator.mock_mode else 'n'}]: ")

        self.orchestrator.reconfigure(
            api_url=api_url or None,
            ws_url=ws_url or None,
            num_players=parse_player_count(count, config.num_test_players) if count else None,
            mock_mode=_is_yes(mock) if mock else None
        )
        self.logger.log('Configuration updated:')
        self.logger.log(f"API URL: {config.server.rest_url}")
        self.logger.log(f"WebSocket URL: {config.server.ws_url}")
        self.logger.log(f"Number of players: {config.num_test_players}")
        self.logger.log(f"Simulation mode: {'On' if config.mock_mode else 'Off'} (applies on reconnect)")

        if _is_yes(await self._ask('Reconnect now with the new configuration? (y/n): ')):
            config.server_supplied = True
            was_running = self.orchestrator.simulation_active
            await self.orchestrator.reinitialize()
            if was_running:
                self.orchestrator.start_simulation()
        return True

    async def cmd_reconnect(self, args: List[str], text: str) -> bool:
        if not args or not args[0].isdigit():
            self.logger.log('Usage: reconnect <id>')
            return True
        await self.orchestrator.reconnect_player(int(args[0]))
        return True

    async def cmd_add(self, args: List[str], text: str) -> bool:
        await self.orchestrator.add_new_player()
        return True

    async def cmd_stats(self, args: List[str], text: str) -> bool:
        for session in self.orchestrator.sessions:
            stats = session.stats
            self.logger.log(f"  {session.display_name}: sent {stats.messages_sent}, "
                            f"received {stats.messages_received}, "
                            f"dropped {stats.messages_dropped}, "
                            f"eliminations {stats.eliminations}")
        return True

    async def cmd_exit(self, args: List[str], text: str) -> bool:
        self.logger.log('Finishing test...')
        return False

    async def cmd_help(self, args: List[str], text: str) -> bool:
        self.show_commands()
        return True
