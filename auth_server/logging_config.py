"""
Structured JSON logging configuration.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Package loggers that share the configured handlers
LOGGER_NAMES = ('auth_server', 'core')


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for attr in ('request_id', 'error_id', 'user_id', 'endpoint', 'method',
                     'status_code', 'remote_addr'):
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry)


def configure_logging(settings, app=None):
    """Configure structured logging for the auth server.

    Args:
        settings: config.settings.AppSettings (log_level, log_format, log_file)
        app: Optional Flask app whose logger will be updated.

    Returns:
        The configured 'auth_server' logger.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)

    if settings.log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    handlers = [console_handler]

    # File handler (if configured)
    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers = list(handlers)

    # Sync Flask's logger
    if app is not None:
        app.logger.handlers = list(handlers)
        app.logger.setLevel(level)

    return logging.getLogger(LOGGER_NAMES[0])
