"""
JSON logging shared by the order API and the notification service.

Every record is one JSON object on stdout; ``extra={...}`` keys become
top-level fields, so ``request_id`` / ``order_id`` can be filtered on
directly in the log pipeline.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

_QUIET = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiokafka": logging.WARNING,
}


def setup_logging(log_level: str = "INFO", service: str | None = None) -> None:
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"service": service} if service else {},
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name, level in _QUIET.items():
        logging.getLogger(name).setLevel(level)
