#!/usr/bin/env python
import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from loop_studio.compressing_rotating_file_handler import CompressingRotatingFileHandler


class LoggingManager:
    """
    Manages application logging configuration.
    """
    def __init__(self, log_file: Path) -> None:
        self.log_file = log_file
        self.handler: Optional[CompressingRotatingFileHandler] = None
        self.console_handler: Optional[RichHandler] = None

    def setup(
        self,
        level: int = logging.INFO,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 10,
        console_level: Optional[int] = logging.WARNING,
    ) -> None:
        """
        Set up logging with a rotating, compressing file handler.

        Args:
            level: Logging level for the log file
            max_bytes: Maximum log file size before rotation
            backup_count: Number of compressed backups to keep
            console_level: Level for warnings echoed to the terminal, None to disable
        """
        self.handler = CompressingRotatingFileHandler(
            filename=str(self.log_file),
            mode="a",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        self.handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        self.handler.setLevel(level)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        # Remove any existing handlers to prevent duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        root_logger.addHandler(self.handler)
        if console_level is not None:
            self.console_handler = RichHandler(level=console_level, show_path=False)
            root_logger.addHandler(self.console_handler)
        logging.info("Logging system initialized")

    def shutdown(self) -> None:
        """
        Properly shut down logging system
        """
        root_logger = logging.getLogger()
        for handler in (self.handler, self.console_handler):
            if handler is not None:
                root_logger.removeHandler(handler)
                handler.close()
        self.handler = None
        self.console_handler = None
