"""
Logging configuration for the Bookstore inventory service.

Standard-library logging is the backbone; structlog events from the store
layer are rendered through the same handlers. Every record carries the ID of
the request being served (bound by the HTTP middleware) together with the
component and operation that emitted it.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog


_request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

# Keyword arguments Logger._log understands; anything else is a structured field
_LOG_KWARGS = frozenset({'exc_info', 'stack_info', 'stacklevel', 'extra'})

# Attributes present on every LogRecord
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

LOG_FORMATS = ('json', 'colored', 'standard')
PLAIN_FORMAT = '%(asctime)s %(levelname)-8s %(name)s [%(request_id)s] %(message)s'

# Libraries that are noisy at INFO
QUIET_LOGGERS = ('uvicorn.access', 'sqlalchemy.engine', 'httpx', 'asyncio')


class RequestContext:
    """Bind a request ID to every log record emitted inside the block."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        self._token = None

    def __enter__(self):
        self._token = _request_id.set(self.request_id)
        structlog.contextvars.bind_contextvars(request_id=self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        structlog.contextvars.unbind_contextvars('request_id')
        _request_id.reset(self._token)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Stamp records with the request ID and a default component."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or '-'
        if not hasattr(record, 'component'):
            record.component = record.name.rsplit('.', 1)[-1]
        if not hasattr(record, 'operation'):
            record.operation = None
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; structured fields are copied to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in entry or key.startswith('_') or value is None:
                continue
            entry[key] = value

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Plain format with the whole line tinted by level, for terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[2m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{self.RESET}" if color else line


class ComponentLogger(logging.LoggerAdapter):
    """
    Logger that tags records with a component name.

    Keyword arguments other than the standard logging ones become structured
    fields on the record::

        logger.info("Cache miss", operation="read_item", key=key)
    """

    def __init__(self, logger: logging.Logger, component: str):
        super().__init__(logger, {'component': component})

    @property
    def component(self) -> str:
        return self.extra['component']

    def process(self, msg, kwargs):
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOG_KWARGS}
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {}), **fields}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None) -> ComponentLogger:
    """Get a component logger; the component defaults to the module name."""
    return ComponentLogger(logging.getLogger(name), component or name.rsplit('.', 1)[-1])


def _build_formatter(format_type: str) -> logging.Formatter:
    if format_type == 'json':
        return JsonLogFormatter()
    if format_type == 'colored':
        return ColoredFormatter(PLAIN_FORMAT)
    return logging.Formatter(PLAIN_FORMAT)


def _configure_structlog() -> None:
    """Send structlog events to the standard handlers, keeping bound context."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_logging(
    level: Union[str, int] = logging.INFO,
    format_type: str = 'colored',
    log_file: Optional[str] = None,
    console: bool = True,
) -> None:
    """
    Install root handlers.

    Args:
        level: Root logging level
        format_type: Console format, one of ``LOG_FORMATS``
        log_file: Optional file that receives JSON lines
        console: Write to stdout
    """
    if format_type not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {format_type}")

    handlers = []
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_build_formatter(format_type))
        handlers.append(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonLogFormatter())
        handlers.append(file_handler)

    context_filter = RequestContextFilter()
    for handler in handlers:
        handler.addFilter(context_filter)

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configure_structlog()

    get_logger(__name__).info(
        "Logging configured",
        operation="configure_logging",
        format_type=format_type,
        log_file=log_file,
    )


def initialize_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging from explicit values, falling back to the environment."""
    level = level or os.getenv('LOG_LEVEL', 'INFO')
    if format_type is None:
        production = os.getenv('ENVIRONMENT', 'development') == 'production'
        format_type = 'json' if production else os.getenv('LOG_FORMAT', 'colored')

    configure_logging(level=level, format_type=format_type, log_file=log_file)
