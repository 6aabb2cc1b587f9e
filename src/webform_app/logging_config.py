"""Console logging for the record controller and the webform-records CLI."""
import logging
import os
import sys

# Third-party loggers that flood the console at INFO during uploads and commits
QUIET_LOGGERS = ('sqlalchemy.engine', 'urllib3', 'requests')

LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'

LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)-25s %(message)s'


class ColorFormatter(logging.Formatter):
    """Colors the level name; the record itself is left untouched for other handlers."""

    def format(self, record):
        color = LEVEL_COLORS.get(record.levelname)
        if color:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname:<8}{RESET}"
        return super().format(record)


def _colors_enabled(stream):
    if os.getenv('LOG_COLORS', 'true').lower() not in ('true', '1', 'yes'):
        return False
    return hasattr(stream, 'isatty') and stream.isatty()


def setup_logging(level=None, stream=None):
    """Send controller, store and queue logs to the console.

    Args:
        level: level name, falling back to LOG_LEVEL and then INFO
        stream: output stream, stdout by default

    Returns:
        logging.Logger: the configured root logger
    """
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    stream = stream or sys.stdout

    handler = logging.StreamHandler(stream)
    handler.setLevel(log_level)
    formatter_class = ColorFormatter if _colors_enabled(stream) else logging.Formatter
    handler.setFormatter(formatter_class(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(log_level)
    # setup_logging runs once per CLI invocation and per app startup
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging initialized (level: {level_name})")
    return root
