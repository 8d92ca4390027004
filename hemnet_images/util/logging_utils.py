"""
Logging helpers shared by both lambdas: JSON log lines and session-prefixed loggers.
"""
import json
import logging
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """One JSON object per line; a record's extra_fields are merged in at the top level."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, 'extra_fields', {}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(log_level='INFO'):
    """Configure logging with JSON formatting"""
    # No-op inside Lambda, where the runtime has already installed a handler
    logging.basicConfig(
        level=logging.INFO,
        format='%(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )

    logging.root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Apply JSON formatter to all handlers
    json_formatter = JSONFormatter()
    for handler in logging.root.handlers:
        handler.setFormatter(json_formatter)

    # boto internals are noisy at DEBUG
    for noisy in ('boto3', 'botocore', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger('hemnet_images')


def log_structured_message(logger, level, message, **fields):
    """Log at a named level ("INFO", "ERROR") with fields rendered as JSON keys"""
    logger.log(logging.getLevelName(level), message, extra={'extra_fields': fields})


class SessionLogger:
    """Simple logger that includes session_id in all messages"""

    def __init__(self, session_id, log_level='INFO', name='hemnet_images'):
        self.session_id = session_id
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    def info(self, message, **fields):
        self._log(logging.INFO, message, fields)

    def warning(self, message, **fields):
        self._log(logging.WARNING, message, fields)

    def error(self, message, **fields):
        self._log(logging.ERROR, message, fields)

    def debug(self, message, **fields):
        self._log(logging.DEBUG, message, fields)

    def exception(self, message, **fields):
        self._log(logging.ERROR, message, fields, exc_info=True)

    def _log(self, level, message, fields, exc_info=False):
        extra = {'extra_fields': dict(fields, session_id=self.session_id)}
        self._logger.log(level, f"[{self.session_id}] {message}", extra=extra, exc_info=exc_info)
