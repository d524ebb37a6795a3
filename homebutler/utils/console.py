"""Colourful console log formatter."""

import logging
import re
from datetime import datetime

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "bright_black": "\033[90m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_cyan": "\033[96m",
    "bg_red": "\033[41m",
}

LEVEL_COLORS = {
    "DEBUG": COLORS["bright_black"],
    "INFO": COLORS["bright_green"],
    "WARNING": COLORS["bright_yellow"],
    "ERROR": COLORS["bright_red"],
    "CRITICAL": COLORS["bg_red"] + COLORS["white"] + COLORS["bold"],
}

# Logger name prefix -> colour
COMPONENT_COLORS = {
    "homebutler.server": COLORS["bright_cyan"],
    "homebutler.services.connection": COLORS["bright_magenta"],
    "homebutler.services.fanout": COLORS["bright_blue"],
    "homebutler.config.host_keys": COLORS["red"],
    "homebutler.dashboard": COLORS["cyan"],
    "homebutler.middleware": COLORS["yellow"],
    "homebutler.config": COLORS["green"],
    "default": COLORS["white"],
}

_PREFIX = "homebutler."
_DURATION = re.compile(r"(\d+\.?\d*m?s)\b")
_SSH_TARGET = re.compile(r"(\w+@[\w\.\-\[\]:]+:\d+)")
_FINGERPRINT = re.compile(r"(SHA256:[A-Za-z0-9+/]+)")


class ColorfulFormatter(logging.Formatter):
    """Log formatter with local timestamps and component highlighting."""

    def __init__(self, use_colors: bool = True) -> None:
        """Initialize the formatter.

        Args:
            use_colors: Whether to use ANSI colors.
        """
        super().__init__()
        self.use_colors = use_colors

    def _colorize(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{COLORS['reset']}"

    def _get_component_color(self, name: str) -> str:
        for prefix, color in COMPONENT_COLORS.items():
            if prefix != "default" and name.startswith(prefix):
                return color
        return COMPONENT_COLORS["default"]

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created).astimezone()
        return f"{dt:%H:%M:%S}.{int(record.msecs):03d} {dt:%m/%d}"

    def _format_level(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname, COLORS["white"])
        return self._colorize(f"{record.levelname:<8}", color)

    def _format_component(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(_PREFIX)
        return self._colorize(f"{name:<22}", self._get_component_color(record.name))

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as ``time | level | component | message``."""
        sep = self._colorize("|", COLORS["dim"])
        timestamp = self._colorize(self._format_timestamp(record), COLORS["dim"])
        message = self._highlight_message(record.getMessage())
        line = (
            f"{timestamp} {sep} {self._format_level(record)} {sep} "
            f"{self._format_component(record)} {sep} {message}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    def _highlight_message(self, message: str) -> str:
        """Highlight durations, SSH targets and key fingerprints."""
        if not self.use_colors:
            return message
        message = _DURATION.sub(f"{COLORS['bright_yellow']}\\1{COLORS['reset']}", message)
        message = _SSH_TARGET.sub(f"{COLORS['bright_magenta']}\\1{COLORS['reset']}", message)
        message = _FINGERPRINT.sub(f"{COLORS['bright_cyan']}\\1{COLORS['reset']}", message)
        return message


class RequestFormatter(ColorfulFormatter):
    """Adds a short marker column for lifecycle and tool-call events."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_colors:
            return base

        message = record.getMessage().lower()
        if "starting" in message or "ready" in message:
            return f"{COLORS['bright_green']}>>>{COLORS['reset']} {base}"
        if "shutting down" in message or "stopped" in message:
            return f"{COLORS['bright_red']}<<<{COLORS['reset']} {base}"
        if "error" in message or "failed" in message or "mismatch" in message:
            return f"{COLORS['bright_red']}!!{COLORS['reset']}  {base}"
        if "slow" in message or "abandoning" in message:
            return f"{COLORS['bright_yellow']}!{COLORS['reset']}   {base}"
        if "opening" in message or "trusted" in message:
            return f"{COLORS['bright_cyan']}+{COLORS['reset']}   {base}"
        return f"    {base}"
