import logging
import sys
import os
from gorillionaire.core.config import settings


class Logger:
    _file_handler = None

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(settings.LOG_LEVEL.upper())

        # Prevent adding multiple handlers if already configured
        if not self.logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

            # File handler is shared across all loggers
            log_file = settings.LOG_FILE
            if Logger._file_handler is None and log_file and os.path.isdir(os.path.dirname(log_file) or "."):
                try:
                    Logger._file_handler = logging.FileHandler(log_file)
                    Logger._file_handler.setFormatter(formatter)
                except OSError as e:
                    self.logger.warning(f"Cannot open log file {log_file}: {e}")

            if Logger._file_handler:
                self.logger.addHandler(Logger._file_handler)

    def info(self, msg: str):
        self.logger.info(msg)

    def warn(self, msg: str):
        self.logger.warning(msg)

    def error(self, msg: str, exc: Exception = None):
        self.logger.error(msg, exc_info=exc)

    def debug(self, msg: str):
        self.logger.debug(msg)
