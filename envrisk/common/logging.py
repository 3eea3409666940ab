"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from envrisk.common.constants import JSON_LOG_FIELDS
from envrisk.common.fs import ensure_dir
from envrisk.common.time_utils import utc_timestamp_iso

LIBRARY_LOGGER_NAME = "envrisk"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": utc_timestamp_iso(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        for field in JSON_LOG_FIELDS:
            if field in payload:
                continue
            payload[field] = getattr(record, field, None)
        return json.dumps(payload, ensure_ascii=False)


def get_library_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return logging.getLogger(LIBRARY_LOGGER_NAME)
    return logging.getLogger(f"{LIBRARY_LOGGER_NAME}.{name}")


def build_logger(run_id: str, level: str = "INFO", log_path: Path | None = None) -> logging.Logger:
    logger = logging.getLogger(f"{LIBRARY_LOGGER_NAME}.cli.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    if log_path is not None:
        ensure_dir(log_path.parent)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    return logger


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)
