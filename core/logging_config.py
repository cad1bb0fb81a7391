"""Structured logging. Each automation run binds a run_id that every line carries."""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

_NO_RUN = "-"
_run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default=_NO_RUN)

# LogRecord's own attributes; anything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_PLAIN_FORMAT = "%(levelname)-7s %(name)s [%(run_id)s] %(message)s"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("apscheduler", "httpx", "uvicorn.access")


def _extras(record: logging.LogRecord) -> dict:
    return {
        k: v for k, v in vars(record).items()
        if k not in _RECORD_ATTRS and not k.startswith("_") and k != "run_id"
    }


class RunIdFilter(logging.Filter):
    """Stamp ``record.run_id`` from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, run_id, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        data: dict = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "run_id": getattr(record, "run_id", None) or _run_id_var.get(),
        }
        data.update(_extras(record))
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route everything to one stdout handler, JSON or plain text."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RunIdFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_PLAIN_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# ── run_id ───────────────────────────────────────────────────────────────────

def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


def set_run_id(run_id: str) -> contextvars.Token:
    return _run_id_var.set(run_id)


def reset_run_id(token: contextvars.Token) -> None:
    _run_id_var.reset(token)


def get_run_id() -> str:
    return _run_id_var.get()


@contextmanager
def run_scope(run_id: str | None = None) -> Iterator[str]:
    """Bind a run_id for the duration of the block."""
    token = set_run_id(run_id or new_run_id())
    try:
        yield _run_id_var.get()
    finally:
        reset_run_id(token)
