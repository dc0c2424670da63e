"""
serterm package init.
Exports the session components and the ``serterm`` command line entry point.
"""

import datetime
import json
import logging
import os
import sys
from typing import Optional, Sequence

from .config import USAGE, Parity, Protocol, SerialConfig, SessionConfig
from .config import config_from_args, parse_command_line
from .exceptions import ConfigurationError, SertermError
from .session import EXIT_FAILURE, EXIT_SUCCESS, Session
from .terminal import RawTerminal


class JSONFormatter(logging.Formatter):
    """JSON formatter with structured logging support."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.datetime.now().isoformat(),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        extra = getattr(record, "serterm_extra", {})
        if extra:
            log_entry.update(extra)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "WARNING", filename: Optional[str] = None) -> None:
    """
    Setup basic logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        filename: Write records to this file instead of stderr
    """
    use_json = os.environ.get("SERTERM_LOG_JSON", "false").lower() == "true"
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler: logging.Handler
    if filename:
        handler = logging.FileHandler(filename)
    else:
        handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root.addHandler(handler)


def _quit_hint(config: SessionConfig) -> str:
    name = config.escape_name
    if name.startswith("^") and name != "^?":
        return f"Use {name}-q (control-{name[1]}, followed by q) to quit."
    return f"Use {name}-q ({name}, followed by q) to quit."


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point: ``serterm [-eo7r] [-s speed] [-p proto] [-l log] [tty]``."""
    args = parse_command_line(argv)
    setup_logging(args.log_level, filename=args.debug_log)
    logger = logging.getLogger(__name__)

    try:
        config = config_from_args(args)
    except ConfigurationError as e:
        print(e.message, file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return EXIT_FAILURE

    print("Terminal starting up...")
    print(_quit_hint(config))
    sys.stdout.flush()

    try:
        session = Session.open(config)
    except SertermError as e:
        logger.debug(f"Startup failed: {e!r}")
        print(e.message, file=sys.stderr)
        return EXIT_FAILURE

    status = session.run()
    if session.error is not None:
        print(session.error.message, file=sys.stderr)
    return status


__all__ = [
    "Parity",
    "Protocol",
    "RawTerminal",
    "SerialConfig",
    "Session",
    "SessionConfig",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "main",
    "setup_logging",
]
