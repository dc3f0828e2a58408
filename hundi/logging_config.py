"""
Structured logging for the API, the Celery workers and the maintenance scripts.

Production writes one JSON object per line so sweep summaries (cycle key,
counts, failed donor ids) can be filtered by field. Development writes plain
text.
"""

import sys
import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from hundi.config import settings

# Libraries that log every statement or request at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "celery.beat")


class JSONFormatter(logging.Formatter):
    """One JSON document per record, with the caller's context merged in."""
    
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": settings.app_name,
            "env": settings.app_env,
        }
        
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        
        # logger.info(..., extra={"context": {...}})
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            for key, value in context.items():
                entry.setdefault(key, value)
        
        return json.dumps(entry, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    
    for handler in list(root.handlers):
        root.removeHandler(handler)
    
    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
        ))
    root.addHandler(handler)
    
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
