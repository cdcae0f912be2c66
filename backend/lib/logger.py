"""
Logging Utility for the Levely Backend

Colour-coded console output with per-component icons, plus a small
structured logger that appends key/value data to messages.
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


class ColoredFormatter(logging.Formatter):
    """Formatter adding timestamp, component icon and level colour."""

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Keyed by the last segment of the logger name
    COMPONENT_ICONS = {
        'main': '🌐',
        'companion': '🧭',
        'engine': '⚙️',
        'observer': '👀',
        'gamification': '📊',
        'badges': '🏅',
        'llm_client': '🤖',
        'progress_store': '💾',
        'chat_history': '💬',
        'quiz_bank': '📚',
        'config': '🔧',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        icon = self.COMPONENT_ICONS.get(record.name.split('.')[-1], self.ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            level_color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
            reset, bold, timestamp_color = Colors.RESET, Colors.BOLD, Colors.TIMESTAMP
        else:
            level_color = reset = bold = timestamp_color = ''

        formatted = (
            f"{timestamp_color}[{timestamp}]{reset} "
            f"{icon} {level_color}{record.levelname:8s}{reset} "
            f"{bold}{record.name}{reset} | {record.getMessage()}"
        )
        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


class StructuredLogger:
    """Logger wrapper that renders an optional data dict below the message."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    @staticmethod
    def _format_data(data: Dict[str, Any]) -> str:
        width = max((len(str(key)) for key in data), default=0)
        return "\n".join(f"    {str(key):<{width}} : {value}" for key, value in data.items())

    def _emit(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, **kwargs):
        if data:
            message = f"{message}\n{self._format_data(data)}"
        self.logger.log(level, message, **kwargs)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Log a banner marking the start of a larger operation."""
        separator = "=" * 60
        self._emit(logging.INFO, f"\n{separator}\n📋 {title.upper()}\n{separator}", data)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.WARNING, message, data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        """Log an error, with traceback when ``error`` is given."""
        if error is not None:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self._emit(logging.ERROR, message, data, exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._emit(logging.INFO, f"✅ {message}", data)

    def request(self, method: str, path: str, learner_id: Optional[str] = None):
        self.logger.info(f"📥 REQUEST: {method} {path}" + (f" (learner={learner_id})" if learner_id else ""))

    def response(self, status: int, path: str, duration: Optional[float] = None):
        timing = f" in {duration * 1000:.2f}ms" if duration is not None else ""
        self.logger.info(f"📤 RESPONSE: {status} {path}{timing}")


def setup_logging(level: int = logging.INFO, use_colors: bool = True) -> logging.Logger:
    """Install the coloured console handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    for noisy in ('asyncio', 'httpx', 'httpcore', 'openai', 'hpack'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
