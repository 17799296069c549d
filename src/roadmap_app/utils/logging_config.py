"""
Logging Configuration
=====================

Colored console logging plus a rotating ``app.log`` for the roadmap service.

Every module logs through :func:`get_logger`, which places it under the
``RoadmapApp.`` namespace, e.g. ``RoadmapApp.generation``.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from colorama import Fore, Style, init

init(autoreset=True)

APP_LOGGER_NAME = "RoadmapApp"
LOG_FILE_NAME = "app.log"
NAME_WIDTH = 16

LEVEL_COLORS: Dict[int, str] = {
    logging.DEBUG: Fore.CYAN,
    logging.INFO: Fore.GREEN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.RED + Style.BRIGHT,
}

COMPONENT_COLORS: Dict[str, str] = {
    'generation': Fore.MAGENTA,
    'single_flight': Fore.MAGENTA,
    'search': Fore.CYAN,
    'oracle': Fore.YELLOW,
    'quality': Fore.RED,
    'store': Fore.BLUE,
    'progress': Fore.GREEN,
    'seeding': Fore.GREEN,
}

# third-party loggers that drown out the service at INFO
QUIET_LOGGERS = (
    'sqlalchemy.engine',
    'sqlalchemy.pool',
    'engineio',
    'socketio',
    'aiohttp.access',
)

_HANDLER_MARK = '_roadmap_app'


class ColoredSmartFormatter(logging.Formatter):
    """``[HH:MM:SS] LEVEL component message`` with optional ANSI colors."""

    def __init__(self, use_colors: bool = True, show_location: bool = False):
        super().__init__()
        self.use_colors = use_colors
        self.show_location = show_location

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{Style.RESET_ALL}" if self.use_colors and color else text

    @staticmethod
    def component(logger_name: str) -> str:
        name = logger_name
        if name.startswith(APP_LOGGER_NAME + '.'):
            name = name[len(APP_LOGGER_NAME) + 1:]
        return name if len(name) <= NAME_WIDTH else name[:NAME_WIDTH - 1] + '~'

    def format(self, record: logging.LogRecord) -> str:
        component = self.component(record.name)
        parts = [
            f"[{self.formatTime(record, '%H:%M:%S')}]",
            self._paint(f"{record.levelname:8}", LEVEL_COLORS.get(record.levelno, '')),
            self._paint(f"{component:{NAME_WIDTH}}", COMPONENT_COLORS.get(component.split('.')[0], Fore.WHITE)),
        ]
        if self.show_location and record.levelno >= logging.WARNING:
            parts.append(self._paint(f"[{record.funcName}:{record.lineno}]", Style.DIM))
        parts.append(record.getMessage())

        line = ' '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


class LoggingConfig:
    """Installs the service's handlers on the root logger."""

    def __init__(self, log_level: Optional[str] = None, log_dir: Optional[Path] = None,
                 log_to_file: bool = True):
        level_name = (log_level or os.environ.get('LOG_LEVEL') or 'INFO').upper()
        self.log_level = getattr(logging, level_name, logging.INFO)
        self.log_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
        self.log_to_file = log_to_file
        self.development = os.environ.get('FLASK_ENV', 'development') == 'development'

    def setup_logging(self) -> logging.Logger:
        """Replace previously installed service handlers; foreign handlers (pytest caplog) stay."""
        root = logging.getLogger()
        for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(self.log_level)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(self.log_level)
        console.setFormatter(ColoredSmartFormatter(use_colors=True, show_location=self.development))
        self._install(root, console)

        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                self.log_dir / LOG_FILE_NAME,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8',
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(ColoredSmartFormatter(use_colors=False, show_location=True))
            self._install(root, file_handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
        if not self.development:
            logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.captureWarnings(True)

        app_logger = logging.getLogger(APP_LOGGER_NAME)
        app_logger.info(
            f"Logging at {logging.getLevelName(self.log_level)}"
            + (f", file {self.log_dir / LOG_FILE_NAME}" if self.log_to_file else "")
        )
        return app_logger

    @staticmethod
    def _install(root: logging.Logger, handler: logging.Handler) -> None:
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)


def setup_application_logging(log_level: Optional[str] = None, log_dir: Optional[Path] = None,
                              log_to_file: bool = True) -> logging.Logger:
    """Configure logging once per app at startup."""
    return LoggingConfig(log_level=log_level, log_dir=log_dir, log_to_file=log_to_file).setup_logging()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
