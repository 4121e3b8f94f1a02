import json
import logging
from datetime import datetime, timezone
from enum import Enum
from logging import Logger
from typing import Any, Dict

from booster_engine.util import redact


def log_json(logger: Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    for key, value in fields.items():
        payload[key] = _clean(value)
    logger.log(level, json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _clean(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, (list, tuple)):
        return [_clean(item) for item in value]
    return value
