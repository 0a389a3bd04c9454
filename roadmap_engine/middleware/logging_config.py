"""
Structured logging configuration.

- Development: one coloured line per record, with project/stage scope
- Production: JSON lines for log aggregation
- Level: ``LOG_LEVEL`` config key, else DEBUG in dev and INFO in prod

Services log with module loggers and pass scope through ``extra``:

    logger.info("Started stage=%s", sid, extra={"project_id": pid, "stage_id": sid})
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Request fields set by middleware/timing.py
_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
# Roadmap scope set by services and the timing middleware
_SCOPE_FIELDS = ("project_id", "stage_id")

_NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "flask_limiter")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for key in _REQUEST_FIELDS + _SCOPE_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        scope = " ".join(
            f"{key.removesuffix('_id')}={getattr(record, key)}"
            for key in _SCOPE_FIELDS
            if getattr(record, key, None) is not None
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if scope:
            line += f" [{scope}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs more than once under tests
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
