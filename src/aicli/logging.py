"""Logging configuration for ai-cli with structlog."""

import logging
import sys
import time
import uuid
from pathlib import Path
from typing import Any, TextIO

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
]


def _renderers(log_file: Path | None) -> list[Any]:
    if log_file:
        return [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
        structlog.dev.set_exc_info,
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]


# Gate decisions and user answers, kept apart from diagnostics.
AUDIT_LOGGER = "aicli.audit"

# File opened for structlog output by the last setup_logging call.
_log_sink: TextIO | None = None


def setup_logging(level: str | None = "WARNING", log_file: Path | None = None) -> None:
    """Configure structlog and stdlib logging.

    Diagnostics never go to stdout, so ``explain --format json`` stays
    parseable. With ``log_file`` set, structlog events are appended to it as
    JSON lines and stdlib records (the security modules) join them there.
    Records of the ``aicli.audit`` logger are written to the file even when
    the level is above INFO.
    """
    log_level = getattr(logging, (level or "WARNING").upper(), logging.WARNING)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(log_level)
    stdlib_handlers: list[logging.Handler] = [stderr_handler]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        stdlib_handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        sink: TextIO = log_file.open("a", encoding="utf-8")
    else:
        sink = sys.stderr
    logging.basicConfig(
        level=log_level,
        handlers=stdlib_handlers,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )
    # Gate decisions reach the log file whatever the level; stderr still filters them.
    logging.getLogger(AUDIT_LOGGER).setLevel(min(log_level, logging.INFO))

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, *_renderers(log_file)],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=sink),
        cache_logger_on_first_use=False,
    )

    global _log_sink
    if _log_sink is not None:
        _log_sink.close()
    _log_sink = sink if log_file else None


def bind_invocation(command: str) -> str:
    """Tag every following log line with a fresh invocation id.

    Gate decisions and confirmations carry the id, so a single CLI run can be
    audited as a unit. Returns the id.
    """
    invocation_id = uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(invocation=invocation_id, cli_command=command)
    return invocation_id


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structlog logger for a module (e.g. ``"aicli.llm.client"``)."""
    return structlog.get_logger(name)


class Timer:
    """Time a block and log its duration at debug level.

    Works both as ``with Timer(...)`` around context resolution and as
    ``async with Timer(...)`` around backend requests and subprocesses.
    """

    def __init__(self, operation: str, logger: Any | None = None):
        self.operation = operation
        self.logger = logger or get_logger("aicli.timer")
        self.elapsed: float = 0.0
        self._started: float = 0.0

    def _start(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def _stop(self, failed: bool) -> None:
        self.elapsed = time.perf_counter() - self._started
        self.logger.debug(
            "Timed operation",
            operation=self.operation,
            elapsed_ms=round(self.elapsed * 1000, 1),
            failed=failed,
        )

    def __enter__(self) -> "Timer":
        return self._start()

    def __exit__(self, exc_type: Any, *args: Any) -> None:
        self._stop(exc_type is not None)

    async def __aenter__(self) -> "Timer":
        return self._start()

    async def __aexit__(self, exc_type: Any, *args: Any) -> None:
        self._stop(exc_type is not None)
