"""
Logging setup shared by the API and the background sweep.

Format: time [level] [trace_id] module.func:line - message

The trace id lives in a ContextVar, so each request (set by middleware in
main.py) and each sweep tick (see trace_ctx) get their own id without
passing it around.
"""
from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_trace_id_var: ContextVar[str] = ContextVar("trace_id", default="-")

_FMT = "%(asctime)s [%(levelname)-5s] [%(trace_id)s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_APP_HANDLER_MARKER = "_is_connex_handler"


def _new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


def set_trace_id(tid: Optional[str] = None) -> str:
    """Set the trace id for the current context and return it."""
    tid = str(tid or "").strip()[:16] or _new_trace_id()
    _trace_id_var.set(tid)
    return tid


@contextmanager
def trace_ctx(trace_id: Optional[str] = None) -> Iterator[str]:
    """Scoped trace id for background work; restored on exit."""
    token = _trace_id_var.set(str(trace_id or "").strip()[:16] or _new_trace_id())
    try:
        yield _trace_id_var.get()
    finally:
        _trace_id_var.reset(token)


class _TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id_var.get()
        return True


def setup_logging(level: str = "INFO") -> None:
    """Attach the stdout handler to the root logger (idempotent, safe under --reload)."""
    root = logging.getLogger()
    lvl = logging.getLevelName(str(level or "INFO").upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    root.setLevel(lvl)
    if any(getattr(h, _APP_HANDLER_MARKER, False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FMT, datefmt=_DATE_FMT))
    handler.addFilter(_TraceIdFilter())
    setattr(handler, _APP_HANDLER_MARKER, True)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
