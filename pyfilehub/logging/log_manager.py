"""
Log manager for PyFileHub.

Owns the one-time ``logging.config.dictConfig`` call for the process and
creates the directory of a file handler before the handler opens it.
"""

from __future__ import annotations

import logging
import logging.config
import os


class LogManager:
    """
    Singleton that applies the logging configuration once.

    Attributes:
        _instance (LogManager | None): Singleton instance of LogManager
        logger_settings (dict): dictConfig-compatible logging settings
    """

    _instance: LogManager | None = None

    def __init__(self, logger_settings: dict | None):
        self.logger_settings = dict(logger_settings or {})
        if not self.logger_settings.get('handlers'):
            # Nothing to configure beyond defaults
            return

        self.logger_settings.setdefault('version', 1)

        for handler in self.logger_settings['handlers'].values():
            log_path = handler.get('filename') if isinstance(handler, dict) else None
            if log_path and os.path.dirname(log_path):
                os.makedirs(os.path.dirname(log_path), exist_ok=True)

        try:
            logging.config.dictConfig(self.logger_settings)
        except (ValueError, TypeError, AttributeError, ImportError) as e:
            logging.basicConfig(level=logging.INFO)
            logging.warning(
                f"Failed to configure logging with provided settings: {e}")

    @classmethod
    def get_instance(cls, logger_settings: dict | None = None) -> LogManager:
        """Return the singleton, creating it from ``logger_settings`` if needed."""
        if cls._instance is None:
            cls._instance = cls(logger_settings)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)
