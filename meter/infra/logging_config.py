"""
Logging setup shared by the CLI and the tray app.

Modules log through logging.getLogger(__name__); this only wires the handlers.
"""

import logging
import sys

from meter.infra.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(settings: Settings) -> None:
    """
    Send everything at the configured level to the log file and warnings to stderr.

    Safe to call more than once; only the first call has an effect.
    """
    global _configured
    if _configured:
        return

    level = getattr(logging, settings.log_level.upper(), logging.WARNING)

    handlers = []
    try:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, encoding='utf-8'))
    except OSError as e:
        print(f"Warning: cannot write log file {settings.log_file}: {e}", file=sys.stderr)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING)
    handlers.append(console)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # Suppress noisy third-party library logs
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    _configured = True
