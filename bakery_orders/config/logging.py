# bakery_orders/config/logging.py
import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Dict, Any

from .settings import get_settings

settings = get_settings()


# Custom formatter with colors for console output
class ColoredFormatter(logging.Formatter):
    """Custom formatter with color coding for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.COLORS['RESET'])
        record.levelname = f"{color}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


# JSON formatter for structured logging
class JSONFormatter(logging.Formatter):
    """JSON formatter for the api and security loggers."""

    EXTRA_FIELDS = ('user_id', 'request_id', 'duration', 'ip_address', 'order_no')

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in self.EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def build_logging_config() -> Dict[str, Any]:
    """Build the dictConfig payload from the current settings."""
    root_handlers = ['console']
    handlers: Dict[str, Any] = {
        'console': {
            'level': 'DEBUG' if settings.DEBUG else 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'colored' if settings.DEBUG else 'standard',
            'stream': 'ext://sys.stdout'
        },
        'structured': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'detailed' if settings.DEBUG else 'json',
            'stream': 'ext://sys.stdout'
        }
    }

    if settings.LOG_FILE:
        handlers['file'] = {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'detailed',
            'filename': settings.LOG_FILE,
            'maxBytes': 10485760,  # 10MB
            'backupCount': 5,
            'encoding': 'utf8'
        }
        root_handlers.append('file')

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(funcName)s(): %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'colored': {
                '()': ColoredFormatter,
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'json': {
                '()': JSONFormatter
            }
        },
        'handlers': handlers,
        'loggers': {
            '': {
                'handlers': root_handlers,
                'level': settings.LOG_LEVEL,
            },
            'uvicorn.access': {
                'handlers': ['structured'],
                'level': 'INFO',
                'propagate': False
            },
            'sqlalchemy.engine': {
                'handlers': root_handlers,
                'level': 'INFO' if settings.DEBUG else 'WARNING',
                'propagate': False
            },
            'security': {
                'handlers': ['structured'],
                'level': 'WARNING',
                'propagate': False
            },
            'api': {
                'handlers': ['structured'],
                'level': 'INFO',
                'propagate': False
            },
        }
    }


def setup_logging():
    """Setup logging configuration."""
    logging.config.dictConfig(build_logging_config())

    logging.getLogger("passlib").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def log_api_request(request_id: str, method: str, path: str, user_id: str = None):
    """Log API request information."""
    logger = get_logger("api")
    extra = {'request_id': request_id}
    if user_id:
        extra['user_id'] = user_id
    logger.info(f"{method} {path}", extra=extra)


def log_api_response(request_id: str, status_code: int, duration: float):
    """Log API response information."""
    logger = get_logger("api")
    extra = {'request_id': request_id, 'duration': duration}
    logger.info(f"Response: {status_code} ({duration:.3f}s)", extra=extra)


def log_security_event(event_type: str, user_id: str = None, details: str = None, ip_address: str = None):
    """Log security-related events."""
    logger = get_logger("security")
    extra = {}
    if user_id:
        extra['user_id'] = user_id
    if ip_address:
        extra['ip_address'] = ip_address

    message = f"Security Event: {event_type}"
    if details:
        message += f" - {details}"

    logger.warning(message, extra=extra)


__all__ = [
    "setup_logging",
    "get_logger",
    "log_api_request",
    "log_api_response",
    "log_security_event",
]
