#!/usr/bin/env python3
"""
Fortress Harness - Command line entry point

Starts a pool of simulated players against a team-shooter game server and
either hands control to the operator console or runs unattended for a fixed
duration.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .config import MAX_PLAYER_COUNT, HarnessConfig, ServerConfiguration
from .console import CommandConsole
from .logger import HarnessLogger, configure_logging
from .session_orchestrator import SessionOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fortress-harness',
        description='Fortress game server client harness',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Discover the server on localhost and open the console
    fortress-harness

    # Connect 5 players to a known server
    fortress-harness --api-url http://localhost:5500/api --ws-url ws://localhost:5500/game --players 5

    # Run unattended for 60 seconds and write a JSON report
    fortress-harness --duration 60 --report reports/harness.json

    # No server at all: simulate everything locally
    fortress-harness --mock

Environment:
    FORTRESS_API_URL, FORTRESS_WS_URL, FORTRESS_PLAYERS, FORTRESS_MOCK and
    FORTRESS_DEBUG are applied before the command line flags.
        """
    )
    parser.add_argument('--api-url', help='REST API base URL (skips discovery)')
    parser.add_argument('--ws-url', help='WebSocket URL (skips discovery)')
    parser.add_argument('--players', type=int,
                        help=f'Number of simulated players, 1-{MAX_PLAYER_COUNT}')
    parser.add_argument('--mock', action='store_true', help='Simulate locally, no network')
    parser.add_argument('--no-scan', action='store_true',
                        help='Use the configured URLs without running discovery')
    parser.add_argument('--quiet', action='store_true', help='Hide per-attempt detail lines')
    parser.add_argument('--heartbeat-ms', type=int, help='Heartbeat period in milliseconds (default: 100)')
    parser.add_argument('--interval', type=float,
                        help='Mean simulation tick interval in seconds (default: 2.0)')
    parser.add_argument('--duration', type=float,
                        help='Run unattended for this many seconds instead of opening the console')
    parser.add_argument('--no-simulation', action='store_true',
                        help='Do not start the random action simulation')
    parser.add_argument('--log-file', help='Also write log output to this file')
    parser.add_argument('--report', help='Write a JSON statistics report on exit')
    return parser


def build_config(args: argparse.Namespace, config: Optional[HarnessConfig] = None) -> HarnessConfig:
    """Apply command line flags on top of the environment configuration"""
    config = config or HarnessConfig.from_env()

    if args.api_url or args.ws_url:
        config.server = ServerConfiguration(
            args.api_url or config.server.rest_url,
            args.ws_url or config.server.ws_url
        )
        config.server_supplied = True
    if args.no_scan:
        config.server_supplied = True

    if args.players is not None:
        if not 0 < args.players <= MAX_PLAYER_COUNT:
            raise ValueError(f"--players must be between 1 and {MAX_PLAYER_COUNT}")
        config.num_test_players = args.players

    if args.mock:
        config.mock_mode = True
    if args.quiet:
        config.debug = False
    if args.heartbeat_ms is not None:
        config.heartbeat_interval = args.heartbeat_ms / 1000.0
    if args.interval is not None:
        config.simulation_interval = args.interval
    return config


def print_banner(config: HarnessConfig) -> None:
    print("=" * 60)
    print("  FORTRESS CLIENT HARNESS")
    print("=" * 60)
    print(f"API URL: {config.server.rest_url}")
    print(f"WebSocket URL: {config.server.ws_url}")
    print(f"Players: {config.num_test_players}")
    print(f"Mode: {'simulation' if config.mock_mode else 'live'}")
    print("=" * 60)


async def run_harness(config: HarnessConfig, args: argparse.Namespace) -> int:
    """Run one harness session; returns the process exit code"""
    logger = HarnessLogger('FortressHarness', debug=config.debug)
    orchestrator = SessionOrchestrator(config, logger=logger)
    exit_code = 0
    try:
        await orchestrator.initialize()
        if not args.no_simulation:
            orchestrator.start_simulation()

        if args.duration is not None:
            logger.log(f"Running unattended for {args.duration}s...")
            await asyncio.sleep(args.duration)
            if not orchestrator.live_sessions():
                logger.error('No live sessions at the end of the run')
                exit_code = 1
        else:
            await CommandConsole(orchestrator).run()

        await orchestrator.stop_simulation()
        orchestrator.log_summary()
        if args.report:
            orchestrator.write_report(args.report)
    finally:
        await orchestrator.shutdown()
    return exit_code


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(debug=config.debug, log_file=args.log_file)
    print_banner(config)

    try:
        exit_code = asyncio.run(run_harness(config, args))
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(130)

    sys.exit(exit_code)


if __name__ == '__main__':
    main()
