"""
PyParSum logging utilities
"""

import logging


class ParsumLogger:
    """Logger that automatically prefixes all messages with [PYPARSUM]"""

    def __init__(self, name: str = "pyparsum"):
        self._logger = logging.getLogger(name)

    def set_level(self, level: str):
        """
        Set logging level

        Args:
            level: Log level string (debug, info, warning, error)
        """
        log_level = getattr(logging, level.upper())
        logging.basicConfig(level=log_level, format="%(message)s")
        self._logger.setLevel(log_level)

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(f"[PYPARSUM] {msg}", *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(f"[PYPARSUM] {msg}", *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(f"[PYPARSUM] {msg}", *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(f"[PYPARSUM] {msg}", *args, **kwargs)


# Global logger instance
logger = ParsumLogger()
