"""Structured logging helpers for the probe service."""

from __future__ import annotations

import logging
import sys
from io import StringIO
from typing import Any

import structlog
from rich.console import Console
from rich.text import Text

from .output_config import LogFormat

LOGGER_NAME = "api_probe"

_HIDDEN_KEYS = {"color_message", "stack", "exception"}

SENSITIVE_KEYS = frozenset({"authorization", "token", "access_token", "jwt_secret", "secret", "password", "apikey"})
REDACTED = "***"


def redact_sensitive(logger: Any, name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential-like fields, including nested request headers."""

    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                inner: REDACTED if str(inner).lower() in SENSITIVE_KEYS else inner_value
                for inner, inner_value in value.items()
            }
    return event_dict


class RichConsoleRenderer:
    """structlog renderer printing one coloured line per event through rich."""

    level_styles = {
        "debug": "dim cyan",
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
    }

    def __init__(self, width: int = 200) -> None:
        self.width = width

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")
        exception = event_dict.pop("exception", None)

        text = Text()
        text.append(timestamp, style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(event, style="bold white")

        pairs = [(key, value) for key, value in sorted(event_dict.items()) if key not in _HIDDEN_KEYS]
        if pairs:
            text.append(" " * max(1, 32 - len(event)))
        for index, (key, value) in enumerate(pairs):
            text.append(f"{key}=", style="dim white")
            text.append(str(value), style="bright_cyan")
            if index < len(pairs) - 1:
                text.append(" ")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self.width, legacy_windows=False).print(text, end="")
        rendered = buffer.getvalue()
        if exception:
            rendered = f"{rendered}\n{exception}"
        return rendered


def configure_logging(log_level: str, log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Configure structlog once per process and return the package logger."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stderr,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        processors.append(RichConsoleRenderer())
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(LOGGER_NAME)
