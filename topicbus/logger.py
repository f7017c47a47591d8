"""Structured logging for topicbus."""

import json
import os
import sys
import time
from typing import Optional, TextIO

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


class Logger:
    """JSON-structured logger, one object per line."""

    def __init__(self, component: str = "bus", level: Optional[str] = None, stream: Optional[TextIO] = None):
        self.component = component
        self.level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
        if self.level == "WARNING":
            self.level = "WARN"
        self.stream = stream

    def is_enabled_for(self, level: str) -> bool:
        return LEVELS.get(level, 0) >= LEVELS.get(self.level, LEVELS["INFO"])

    def _log(self, level: str, message: str, **kwargs):
        """Internal logging method."""
        if not self.is_enabled_for(level):
            return
        log_entry = {
            "timestamp": time.time(),
            "level": level,
            "component": self.component,
            "message": message,
            **kwargs
        }
        print(json.dumps(log_entry, default=str), file=self.stream or sys.stdout)

    def info(self, message: str, **kwargs):
        """Log info level message."""
        self._log("INFO", message, **kwargs)

    def warn(self, message: str, **kwargs):
        """Log warning level message."""
        self._log("WARN", message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error level message."""
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug level message."""
        self._log("DEBUG", message, **kwargs)
