import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Chatty transport loggers, kept quiet unless DEBUG is requested
_NOISY_LOGGERS = (
    "urllib3",
    "google.auth",
    "google.auth.transport",
    "httpx",
    "httpcore",
)


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured output.

    One JSON object per record with fields ts, level, logger, msg, plus
    "exc" when exception info is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    pattern = "[%(asctime)s] [%(levelname)s] "
    if with_name:
        pattern += "%(name)s "
    return logging.Formatter(pattern + "%(message)s", datefmt=_DATEFMT)


def resolve_level(mode: str, debug: bool = False) -> int:
    """Return the effective log level for *mode*.

    ``debug`` wins over ``LOG_LEVEL``; otherwise MCP mode defaults to
    WARNING and CLI mode to INFO.
    """
    if debug:
        return logging.DEBUG
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()
    return getattr(logging, env_level, logging.INFO)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging for the given execution mode.

    Args:
        mode: "mcp" logs to a file only (stdout carries JSON-RPC),
            "cli" logs to stderr and optionally to a file.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json".

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
        LOG_FILE: Log file path for MCP mode.
                  Default: /tmp/tagplan-mcp.log
    """
    log_level = resolve_level(mode, debug)
    handlers: list[logging.Handler] = []

    if mode == "mcp":
        target = log_file or os.getenv("LOG_FILE", "/tmp/tagplan-mcp.log")
        file_handler = logging.FileHandler(target, mode="a")
        file_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_formatter(debug_format, with_name=False))
        handlers.append(stderr_handler)
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(_formatter(debug_format, with_name=True))
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    if log_level != logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
