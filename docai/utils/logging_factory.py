"""Centralized logging setup for library and CLI use.

The library itself only ever calls ``logging.getLogger(__name__)``. This
factory is what an application (the ``docai`` CLI, or a host program) calls
once to decide where those records go.

Usage:
    LoggingFactory.initialize(level=logging.INFO, log_file=Path("logs/docai.log"))

    logger = LoggingFactory.get_logger(__name__)
    logger.info("Client started")
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LoggingFactory:
    """Factory for configuring the ``docai`` logger hierarchy once.

    Class Attributes:
        _initialized: Flag to ensure single initialization
        _handlers: Handlers installed by :meth:`initialize`, removed by :meth:`reset`
    """

    _initialized = False
    _handlers: List[logging.Handler] = []
    ROOT_LOGGER = "docai"

    @classmethod
    def initialize(
        cls,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Union[str, Path]] = None,
        format_string: Optional[str] = None,
        console_handler: Optional[logging.Handler] = None,
    ) -> None:
        """Configure the ``docai`` logger on first call; later calls are ignored.

        Args:
            level: Level for the package logger, as an int or a name like "DEBUG"
            log_file: Optional file to append records to. Its directory is created.
            format_string: Format for the file handler
            console_handler: Handler for terminal output. Defaults to a plain
                StreamHandler; the CLI passes a RichHandler.
        """
        if cls._initialized:
            return

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
        handlers: List[logging.Handler] = []

        if console_handler is None:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
        handlers.append(console_handler)

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        package_logger = logging.getLogger(cls.ROOT_LOGGER)
        package_logger.setLevel(level)
        for handler in handlers:
            package_logger.addHandler(handler)

        cls._handlers = handlers
        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger, initializing the factory with defaults if needed."""
        if not cls._initialized:
            cls.initialize()
        return logging.getLogger(name)

    @classmethod
    def set_level(cls, name: str, level: int) -> None:
        """Set the logging level for a specific logger."""
        logging.getLogger(name).setLevel(level)

    @classmethod
    def configure_verbose(cls, verbose: bool = False) -> None:
        """Switch the package logger between DEBUG and INFO."""
        logging.getLogger(cls.ROOT_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)

    @classmethod
    def reset(cls) -> None:
        """Remove installed handlers so :meth:`initialize` can run again."""
        package_logger = logging.getLogger(cls.ROOT_LOGGER)
        for handler in cls._handlers:
            package_logger.removeHandler(handler)
            handler.close()
        cls._handlers = []
        cls._initialized = False


def get_logger(name: str) -> logging.Logger:
    """Shortcut for :meth:`LoggingFactory.get_logger`."""
    return LoggingFactory.get_logger(name)
