"""
fixedsig logging

One process-wide configuration built on the standard ``logging`` module with
a ``rich`` console handler. Proposal ids, lifecycle statuses and vote choices
are highlighted so an operator can follow a proposal through the node log.

    >>> from fixedsig.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Proposal #3 (Pay dave): OPEN → PASSED")

Settings come from ``.env`` via constants.py (LOG_LEVEL, LOG_FORMAT,
LOG_DATE_FORMAT, LOG_CONSOLE_HIGHLIGHTING, LOG_FILE_OUTPUT).
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

LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "fixedsig.log"

# Third-party loggers and the most verbose level they may emit at
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "uvicorn": logging.ERROR,
    "uvicorn.error": logging.ERROR,
    "slowapi": logging.WARNING,
}

NODE_THEME = Theme({
    "fixedsig.timestamp":  "bold cyan",
    "fixedsig.logger":     "magenta",
    "fixedsig.debug":      "bold dim",
    "fixedsig.info":       "bold green",
    "fixedsig.warning":    "bold yellow",
    "fixedsig.error":      "bold red",
    "fixedsig.critical":   "bold red reverse",
    "fixedsig.proposal":   "bold cyan",
    "fixedsig.open":       "cyan",
    "fixedsig.passed":     "bold green",
    "fixedsig.rejected":   "bold red",
    "fixedsig.executed":   "bold blue",
    "fixedsig.vote":       "bold white",
    "fixedsig.arrow":      "bold yellow",
})


def _level(value) -> int:
    return getattr(logging, str(value).upper(), logging.INFO)


class LogManager:
    """
    Process-wide singleton that owns the root logger's handlers.

    ``configure`` runs once (on import of this module); later calls are
    no-ops. ``set_level`` adjusts the level afterwards, e.g. from the
    ``[node] log_level`` config value.
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

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        with self._lock:
            if self._configured:
                return

            level = _level(log_level or LOG_LEVEL)
            formatter = self._build_formatter()

            handlers: List[logging.Handler] = []
            if console_output:
                handlers.append(self._console_handler())
            if file_output if file_output is not None else bool(LOG_FILE_OUTPUT):
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH))

            root = logging.getLogger()
            root.handlers.clear()
            root.setLevel(level)
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            for name, quiet_level in QUIET_LOGGERS.items():
                logging.getLogger(name).setLevel(quiet_level)

            self._configured = True

    def set_level(self, log_level: str) -> None:
        level = _level(log_level)
        root = logging.getLogger()
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)

    # ── Handlers ──────────────────────────────────────────────────────

    @staticmethod
    def _build_formatter() -> "TerminalSafeFormatter":
        log_format = str(LOG_FORMAT) or str(LOG_FORMAT.default())
        try:
            logging.Formatter(log_format).format(
                logging.makeLogRecord({"msg": "probe", "levelname": "INFO"})
            )
        except (ValueError, KeyError, TypeError) as e:
            print(f"fixedsig.logger: bad LOG_FORMAT ({e}), using default", file=sys.stderr)
            log_format = str(LOG_FORMAT.default())

        date_format = str(LOG_DATE_FORMAT) or str(LOG_DATE_FORMAT.default())
        formatter = TerminalSafeFormatter(fmt=log_format, datefmt=f"{date_format} UTC")
        formatter.converter = time.gmtime
        return formatter

    @staticmethod
    def _console_handler() -> logging.Handler:
        if not LOG_CONSOLE_HIGHLIGHTING:
            return logging.StreamHandler(sys.stdout)
        return RichHandler(
            console=Console(theme=NODE_THEME, highlight=False),
            highlighter=NodeLogHighlighter(),
            keywords=[],
            markup=False,
            rich_tracebacks=True,
            show_time=False,
            show_level=False,
            show_path=False,
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


class TerminalSafeFormatter(logging.Formatter):
    """
    Strips ANSI escapes and control characters from formatted records.

    Titles, descriptions and addresses arrive from callers and end up in log
    lines verbatim.
    """

    _unsafe = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"      # CSI sequences
        r"|\x1b[@-Z\\-_]"               # lone ESC + byte
        r"|[\x00-\x08\x0B-\x1F\x7F]"    # controls except tab/newline (incl. CR)
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class NodeLogHighlighter(RegexHighlighter):
    base_style = "fixedsig."
    highlights = [
        r"(?P<timestamp>^.*?UTC)",
        r"\-\s+\w+\s+-\s+(?P<logger>[\w.]+)(?=\s-\s)",
        r"(?P<debug>\bDEBUG\b)",
        r"(?P<info>\bINFO\b)",
        r"(?P<warning>\bWARNING\b)",
        r"(?P<error>\bERROR\b)",
        r"(?P<critical>\bCRITICAL\b)",
        r"(?P<proposal>Proposal #\d+)",
        r"(?P<open>\bOPEN\b)",
        r"(?P<passed>\bPASSED\b)",
        r"(?P<rejected>\bREJECTED\b)",
        r"(?P<executed>\bEXECUTED\b)",
        r"(?P<vote>\b(YES|NO|ABSTAIN|VETO)\b)",
        r"(?P<arrow>→)",
    ]


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    return _manager.get_logger(name)


_manager.configure()
