"""
Fortress Harness - Logging

Thin leveled sink over the standard logging module. Components log through a
HarnessLogger so that "verbose" lines (per-endpoint attempts, heartbeat noise)
can be silenced with --quiet without touching the rest of the output.
"""

import logging
from pathlib import Path
from typing import Optional

import aiohttp


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(debug: bool = True, log_file: Optional[str] = None) -> None:
    """Configure root logging once for the whole harness process"""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    # Library chatter drowns out the per-endpoint attempt lines
    logging.getLogger('websockets').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)


class HarnessLogger:
    """
    Leveled logger used by every harness component.

    log(message, verbose) writes informational lines; verbose lines are only
    emitted when debug output is enabled. error(message, exc) adds whatever
    detail the exception carries about the failed request.
    """

    def __init__(self, name: str, debug: bool = True):
        self.name = name
        self.debug = debug
        self._logger = logging.getLogger(name)

    def log(self, message: str, verbose: bool = False) -> None:
        if verbose:
            if self.debug:
                self._logger.debug(message)
            return
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str, exc: Optional[BaseException] = None) -> None:
        """Log an error with request/response detail when available"""
        self._logger.error(message)
        if exc is None:
            return

        if isinstance(exc, aiohttp.ClientResponseError):
            self._logger.error(f"Status: {exc.status}")
            self._logger.error(f"Response: {exc.message}")
        elif isinstance(exc, (aiohttp.ClientConnectionError, ConnectionError)):
            self._logger.error("No response from server. Check that the server is running.")
        else:
            self._logger.error(f"Message: {exc}")

        if self.debug:
            self._logger.debug(f"{type(exc).__name__} detail", exc_info=exc)

    def child(self, name: str) -> 'HarnessLogger':
        """Logger for a sub-component sharing this logger's verbosity"""
        return HarnessLogger(f"{self.name}.{name}", debug=self.debug)
