"""
Job and Request Logging

Batch jobs log to the console and to one append-only file per run
(``{log_dir}/{job}-{timestamp}.log``). Every line carries the correlation
fields active when it was emitted:

    job_run_id   set once per job run
    content_id   the title being reconciled (``movie:550``)
    request_id   the HTTP request (X-Request-ID)
    extra        season/episode and similar per-item details

All fields live in one immutable LogContext held in a ContextVar, so each
asyncio task reconciling a title sees only its own values.
"""

import json
import logging
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

PLAIN_FORMAT = '[%(asctime)s] [%(levelname)s] [%(job_run_id)s] %(name)s - %(message)s'
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")


@dataclass(frozen=True)
class LogContext:
    job_run_id: Optional[str] = None
    content_id: Optional[str] = None
    request_id: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def as_fields(self) -> Dict[str, Any]:
        fields = {
            name: value
            for name, value in (
                ("job_run_id", self.job_run_id),
                ("content_id", self.content_id),
                ("request_id", self.request_id),
            )
            if value
        }
        if self.extra:
            fields["context"] = dict(self.extra)
        return fields


_context: ContextVar[LogContext] = ContextVar('availarr_log_context', default=LogContext())


def current_context() -> LogContext:
    return _context.get()


def _update(**changes) -> Token:
    return _context.set(replace(_context.get(), **changes))


def generate_run_id() -> str:
    """Short id for a job run or an HTTP request."""
    return uuid.uuid4().hex[:8]


def set_job_run_id(job_run_id: Optional[str]) -> None:
    _update(job_run_id=job_run_id)


def set_request_id(request_id: Optional[str]) -> None:
    _update(request_id=request_id)


def clear_context() -> None:
    """Drop item and request fields; the job run id stays."""
    _context.set(LogContext(job_run_id=_context.get().job_run_id))


class CorrelationContext:
    """
    Tag every log line inside the block with a content id and extra fields.

    Usage:
        with CorrelationContext(content_id="tvshow:1399", season=1, episode=2):
            logger.info("probing")
    """

    def __init__(self, content_id: Optional[str] = None, **extra):
        self.content_id = content_id
        self.extra = extra
        self._token: Optional[Token] = None

    def __enter__(self):
        merged = {**_context.get().extra, **self.extra}
        self._token = _update(content_id=self.content_id, extra=merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _context.reset(self._token)
        return False


class ContextFilter(logging.Filter):
    """Expose the run and content ids to plain-text format strings."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _context.get()
        record.job_run_id = context.job_run_id or "-"
        record.content_id = context.content_id or "-"
        return True


class JSONLogFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, source and correlation fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context.get().as_fields())

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, _ = record.exc_info
            entry["exception"] = {"type": error_type.__name__, "message": str(error)}

        return json.dumps(entry, default=str)


def _handler(handler: logging.Handler, level: int, json_output: bool) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(JSONLogFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    handler.addFilter(ContextFilter())
    logging.getLogger().addHandler(handler)
    return handler


def attach_console_logging(level: int = logging.INFO, json_output: bool = False) -> logging.Handler:
    """Add a console handler to the root logger and return it."""
    return _handler(logging.StreamHandler(), level, json_output)


def setup_job_logging(
    job_name: str,
    log_dir: str = "logs",
    level: int = logging.INFO,
    json_output: bool = False
) -> List[logging.Handler]:
    """
    Console plus per-run file logging for one job, under a fresh run id.

    Args:
        job_name: File prefix, e.g. "movies"
        log_dir: Created if missing
        level: Root logger level
        json_output: JSON lines instead of plain text

    Returns:
        The handlers added to the root logger (console, file)
    """
    logging.getLogger().setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / f"{job_name}-{datetime.utcnow():%Y-%m-%dT%H-%M-%S}.log"

    handlers = [
        attach_console_logging(level, json_output),
        _handler(logging.FileHandler(log_file, mode='a', encoding='utf-8'), level, json_output),
    ]

    set_job_run_id(generate_run_id())
    logging.getLogger(__name__).info(f"Logging {job_name} run {current_context().job_run_id} to {log_file}")
    return handlers
