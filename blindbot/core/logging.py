"""
Logging setup shared by the API process and the Celery workers.

Production (or USE_JSON_LOGGING) emits one JSON object per record so log
shippers can index tenant and gate context; everywhere else gets a compact
human-readable line.
"""
import inspect
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from blindbot.core.config import get_settings

# Record attributes copied into JSON entries when present
CONTEXT_FIELDS = ('tenant_id', 'gate_state', 'task_id', 'duration_ms')

QUIET_LOGGERS = (
    'urllib3', 'httpx', 'httpcore', 'openai', 'botocore', 'boto3', 'stripe', 'sqlalchemy.engine'
)

HUMAN_FORMAT = '%(asctime)s %(levelname)-7s [%(service)s] %(name)s: %(message)s'


class ServiceNameFilter(logging.Filter):
    """Stamps every record with the emitting process's service name"""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record):
        record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record):
        entry = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'service': getattr(record, 'service', None),
            'logger': record.name,
            'msg': record.getMessage(),
            'at': f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info:
            entry['exc'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _wants_json(format_type: str) -> bool:
    settings = get_settings()
    return (
        format_type == 'json'
        or settings.use_json_logging
        or settings.environment.lower() == 'production'
    )


def setup_logging(
    level: Optional[str] = None,
    format_type: str = 'standard',
    log_file: Optional[str] = None,
    service_name: str = 'blindbot'
) -> logging.Logger:
    """
    Install handlers on the root logger.

    Args:
        level: Level name; defaults to LOG_LEVEL from settings
        format_type: 'json' or 'standard' (production always logs JSON)
        log_file: Also write to this file when given
        service_name: Stamped on every record as ``service``
    """
    numeric_level = logging.getLevelName(str(level or get_settings().log_level).upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if _wants_json(format_type):
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(HUMAN_FORMAT, datefmt='%H:%M:%S')
    service_filter = ServiceNameFilter(service_name)

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(service_filter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(service_name)


class ContextAdapter(logging.LoggerAdapter):
    """Merges bound context into each call's extra; explicit extra values win."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: Optional[str] = None, **context):
    """Logger for name (the caller's module by default), bound to context such as tenant_id."""
    if name is None:
        name = inspect.stack()[1].frame.f_globals.get('__name__', 'blindbot')
    logger = logging.getLogger(name)
    return ContextAdapter(logger, context) if context else logger


def setup_worker_logging() -> logging.Logger:
    return setup_logging(service_name='blindbot-worker')
