"""
CAL Governance Logging
======================

Process-wide logging for the governance contracts and the chain runtime.
Records go through the standard ``logging`` tree; the console handler is a
``rich`` handler that colors addresses, operation ids, lifecycle states and
``[component]`` tags.

Usage:
    >>> from calgov.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("[governor] proposal 0x1a2b3c4d created")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "calgov.log"

GOVERNANCE_THEME = Theme({
    "calgov.address":   "cyan",
    "calgov.arrow":     "bold yellow",
    "calgov.opid":      "dim cyan",
    "calgov.component": "bold magenta",
    "calgov.passed":    "bold green",
    "calgov.failed":    "bold red",
    "calgov.waiting":   "bold yellow",
    "calgov.levelname": "bold white",
    "calgov.timestamp": "bold cyan",
})


class GovernanceHighlighter(RegexHighlighter):
    """Highlights chain identifiers and lifecycle states in log lines."""

    base_style = "calgov."
    highlights = [
        r"(?P<timestamp>^.*?UTC)",
        r"(?P<levelname>\b(DEBUG|INFO|WARNING|ERROR|CRITICAL)\b)",
        r"(?P<component>\[[a-z_]+\])",
        r"(?P<arrow>-->|→)",
        r"(?P<opid>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<passed>\b(SUCCEEDED|QUEUED|EXECUTED|READY|DONE)\b)",
        r"(?P<failed>\b(DEFEATED|CANCELED|CANCELLED|EXPIRED)\b|denied)",
        r"(?P<waiting>\b(PENDING|ACTIVE|WAITING)\b)",
    ]


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips terminal control sequences from the final line.

    Proposal descriptions and vote reasons are caller-supplied strings and
    end up verbatim in log messages.
    """

    _ansi_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    # C0 controls except tab and newline, plus DEL
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._ansi_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class LogManager:
    """
    Singleton owner of the root logger configuration.

    ``configure`` runs once on import with the ``.env``-driven defaults and
    again (``force=True``) when a loaded config file asks for a different
    level or file output.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._configured = False
                    cls._instance = instance
        return cls._instance

    @staticmethod
    def checked_format(log_format: str) -> str:
        """Return *log_format* if it formats a record cleanly, else the default."""
        try:
            probe = logging.LogRecord("calgov", logging.INFO, "", 0, "probe", (), None)
            logging.Formatter(fmt=str(log_format)).format(probe)
        except (ValueError, KeyError, TypeError) as e:
            print(f"calgov.logger: bad LOG_FORMAT ({e}), using default", file=sys.stderr)
            return str(LOG_FORMAT.default())
        return str(log_format)

    @staticmethod
    def checked_date_format(date_format: str) -> str:
        """Return *date_format* if strftime accepts it and it contains a directive."""
        date_format = str(date_format)
        try:
            valid = "%" in date_format and bool(time.strftime(date_format, time.gmtime(0)))
        except ValueError:
            valid = False
        if not valid:
            print("calgov.logger: bad LOG_DATE_FORMAT, using default", file=sys.stderr)
            return str(LOG_DATE_FORMAT.default())
        return date_format

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
        force: bool = False,
    ) -> None:
        """
        Install handlers on the root logger.

        Args:
            log_level: DEBUG, INFO, ... (defaults to ``LOG_LEVEL``)
            log_file: Rotating log file path (defaults to ``logs/calgov.log``)
            console_output: Attach the console handler
            file_output: Attach the rotating file handler (defaults to ``LOG_FILE_OUTPUT``)
            force: Replace an existing configuration
        """
        with self._lock:
            if self._configured and not force:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            formatter = TerminalSafeFormatter(
                fmt=self.checked_format(LOG_FORMAT),
                datefmt=self.checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers: List[logging.Handler] = []
            if console_output:
                handlers.append(self._console_handler())
            if bool(LOG_FILE_OUTPUT) if file_output is None else file_output:
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH))

            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    @staticmethod
    def _console_handler() -> logging.Handler:
        if not LOG_CONSOLE_HIGHLIGHTING:
            return logging.StreamHandler(sys.stderr)
        return RichHandler(
            console=Console(theme=GOVERNANCE_THEME, highlight=False, stderr=True),
            highlighter=GovernanceHighlighter(),
            keywords=[],
            rich_tracebacks=True,
            show_path=False,
            show_time=False,
            show_level=False,
            markup=False,
        )

    @staticmethod
    def _file_handler(path: Path) -> logging.Handler:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    @property
    def is_configured(self) -> bool:
        return self._configured


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures logging on first use."""
    return _manager.get_logger(name)


def configure_logging(**kwargs) -> None:
    """Re-apply logging configuration, e.g. from ``CALGovConfig.logging``."""
    _manager.configure(force=True, **kwargs)


_manager.configure()
