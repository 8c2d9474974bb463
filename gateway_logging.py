"""JSON log lines on stdout: timestamp, level, logger, message and any ``extra`` fields."""
import logging
import sys

from pythonjsonlogger.json import JsonFormatter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
RENAME_FIELDS = {"asctime": "timestamp", "levelname": "level", "name": "logger"}


def create_json_formatter() -> JsonFormatter:
    return JsonFormatter(LOG_FORMAT, rename_fields=RENAME_FIELDS)


def configure_logging(level: str = "INFO") -> logging.Handler:
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        if getattr(handler, "_gateway_json", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(create_json_formatter())
    handler._gateway_json = True
    root.addHandler(handler)
    return handler
