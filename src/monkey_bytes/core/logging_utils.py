from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config import LogConfig

_HANDLER_MARKER = "_monkey_bytes_rotating"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return repr(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    """Emit one structured log line: a JSON object keyed by ``event``."""

    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _jsonable(value)
    if exc is not None:
        payload["exc_type"] = type(exc).__name__
        payload["exc"] = str(exc)
    logger.log(
        level,
        json.dumps(payload, ensure_ascii=False, sort_keys=False),
        exc_info=exc if exc_info and exc is not None else None,
    )


def setup_rotating_logger(name: str, config: LogConfig) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    for handler in logger.handlers:
        if getattr(handler, _HANDLER_MARKER, False):
            return logger

    config.path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        config.path,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_MARKER, True)
    logger.addHandler(handler)
    return logger
