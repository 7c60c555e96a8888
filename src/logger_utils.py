import json
import logging
import os
import sys
from typing import Optional

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

# attributes every LogRecord carries; anything else came in through extra=
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {'message', 'asctime'}


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log levels"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # cyan
        'INFO': '\033[32m',     # green
        'WARNING': '\033[33m',  # yellow
        'ERROR': '\033[31m',    # red
        'CRITICAL': '\033[35m', # magenta
    }
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def __init__(self, use_colors=True, stream=None):
        super().__init__()
        self.stream = stream or sys.stderr
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self):
        """Check if terminal supports colors"""
        return (
            hasattr(self.stream, "isatty") and self.stream.isatty() and
            os.environ.get('TERM') != 'dumb' and
            os.environ.get('NO_COLOR') is None
        )

    def format(self, record):
        fields = _extra_fields(record)
        suffix = " " + " ".join(f"{k}={v}" for k, v in fields.items()) if fields else ""
        message = f"{record.getMessage()}{suffix}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if self.use_colors:
            level_color = self.COLORS.get(record.levelname, '')
            level_name = f"{level_color}{self.BOLD}{record.levelname:<8}{self.RESET}"

            # format timestamp with subdued color
            timestamp = f"\033[90m{self.formatTime(record, '%H:%M:%S')}\033[0m"

            return f"{timestamp} {level_name} {message}"
        else:
            # fallback to standard format without colors
            return f"{self.formatTime(record, '%Y-%m-%d %H:%M:%S')} - {record.levelname} - {message}"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, extra= fields merged in"""

    def format(self, record):
        payload = {
            'time': self.formatTime(record, '%Y-%m-%dT%H:%M:%S%z'),
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload['stacktrace'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _extra_fields(record: logging.LogRecord) -> dict:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS and not k.startswith('_')}


def _build_handler(output: Optional[str]) -> logging.Handler:
    if not output or output == 'stdout':
        return logging.StreamHandler(sys.stdout)
    if output == 'stderr':
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(output, mode='a', encoding='utf-8')


def setup_logging(level: str = 'info', fmt: str = 'console', output: Optional[str] = None,
                  verbose: bool = False, no_color: bool = False):
    """Setup root logging with the configured level, format and destination"""
    logger = logging.getLogger()

    # remove existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = _build_handler(output)
    if fmt == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        stream = getattr(handler, 'stream', None)
        handler.setFormatter(ColoredFormatter(use_colors=not no_color, stream=stream))

    # set level
    log_level = logging.DEBUG if verbose else LEVELS.get(str(level).lower(), logging.INFO)
    logger.setLevel(log_level)
    handler.setLevel(log_level)

    logger.addHandler(handler)

    return logger
