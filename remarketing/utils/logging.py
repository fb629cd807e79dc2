"""
Logging setup for the remarketing recommender.

``configure_logging(config)`` is called once by each CLI command; library
modules only ever use ``logging.getLogger(__name__)``.

A workflow pass can run on the scheduler's timer thread or on the caller's
thread (manual trigger), and both write to the same handlers.  Lines logged
inside ``pass_context(kind)`` carry ``pass_kind`` (``"scheduled"`` or
``"manual"``) so the two can be told apart; everything else shows ``-``.

Text format::

    2026-03-01T07:00:12Z [INFO] remarketing.pipeline.workflow (scheduled): ...

JSON format (``[logging] json_format = true``), one object per line::

    {"ts": "...", "level": "INFO", "logger": "...", "pass": "scheduled",
     "msg": "...", "customer_id": "c1"}

Keys passed through ``extra=`` (``customer_id``, ``rec_id``) are copied into
the JSON object.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from remarketing.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(pass_kind)s): %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# HTTP client loggers used by the LLM oracle and the webhook notifier.  At
# INFO they log every request URL; only surface them when debugging.
_HTTP_LOGGERS = ("httpx", "httpcore")

_EXTRA_KEYS = ("customer_id", "rec_id")

_pass_kind: contextvars.ContextVar[str] = contextvars.ContextVar(
    "remarketing_pass_kind", default="-"
)


@contextmanager
def pass_context(kind: str) -> Iterator[None]:
    """Tag every record logged in this block (on this thread) with ``kind``."""
    token = _pass_kind.set(kind)
    try:
        yield
    finally:
        _pass_kind.reset(token)


class PassKindFilter(logging.Filter):
    """Stamp ``record.pass_kind`` from the current ``pass_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.pass_kind = _pass_kind.get()
        return True


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "pass": getattr(record, "pass_kind", "-"),
            "msg": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: "LoggingConfig") -> None:
    """Install console (stdout) and optional file handlers on the root logger.

    Args:
        config: Logging section of ``AppConfig``.  ``log_file`` may be empty
            to disable the file handler; its parent directory is created.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter: logging.Formatter = (
        JsonLineFormatter() if config.json_format
        else logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(PassKindFilter())

    logging.basicConfig(level=level, handlers=handlers, force=True)

    http_level = logging.DEBUG if level == logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
