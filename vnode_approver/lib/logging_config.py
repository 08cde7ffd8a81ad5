"""JSON logging configuration for the vnode approver."""

import logging

from pythonjsonlogger import jsonlogger

PACKAGE_LOGGER = "vnode_approver"

# LogRecord attribute -> emitted JSON key
_RENAMED_FIELDS = {
    "levelname": "level",
    "name": "logger",
    "threadName": "thread",
}

_ALLOWED_FIELDS = frozenset(
    {
        "timestamp",
        "level",
        "logger",
        "thread",
        "message",
        "exc_info",
        "funcName",
        "lineno",
    }
)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter tagging each line with its module logger and worker thread."""

    def add_fields(self, log_record, record, message_dict):
        """Rename record attributes and drop everything not in the allowed set.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        for source, target in _RENAMED_FIELDS.items():
            if source in log_record:
                log_record[target] = log_record.pop(source)

        for key in [key for key in log_record if key not in _ALLOWED_FIELDS]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    """Attach the JSON handler to the package logger.

    Library modules log through ``logging.getLogger(__name__)`` and inherit
    this handler as children of ``vnode_approver``.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        CustomJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(name)s %(threadName)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_log_level(level: str) -> None:
    """Set the package log level from a name such as ``DEBUG`` or ``info``."""
    LOGGER.setLevel(level.upper())


LOGGER = _setup_logger()
