"""
Logging for the teachable image classifier.

Handlers, level and format come from the ``logging`` section of the config.
File logging is optional: an empty ``logging.file`` disables it.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional

from teachable.config import config

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    name: Optional[str] = None,
    log_file: Optional[Path] = None,
    level: Optional[str] = None,
    console: Optional[bool] = None
) -> logging.Logger:
    """
    Attach console and/or file handlers to a logger, once.

    Arguments left as None are read from config. A logger that already has
    handlers is returned unchanged.

    Example:
        >>> logger = setup_logging('teachable.scripts.train_forest')
        >>> logger.info('Training started')
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = level or config.get('logging.level', 'INFO')
    if console is None:
        console = config.get('logging.console', True)
    if log_file is None and config.get('logging.file'):
        log_file = Path(config.get('logging.file'))

    log_level = getattr(logging, str(level).upper(), logging.INFO)
    logger.setLevel(log_level)
    formatter = logging.Formatter(config.get('logging.format', DEFAULT_FORMAT))

    handlers = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug(f"Logging initialized: level={level}, file={log_file}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger (pass __name__), configured on first use."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        setup_logging(name)
    return logger


class ProgressLogger:
    """
    Periodic progress lines for tree building and batch prediction.

    Example:
        >>> progress = ProgressLogger(total=50, name='tree building', log_interval=10)
        >>> for _ in range(50):
        ...     progress.update()
        >>> progress.finish()
    """

    def __init__(
        self,
        total: int,
        name: str = 'operation',
        log_interval: int = 100,
        logger: Optional[logging.Logger] = None
    ):
        self.total = total
        self.name = name
        self.log_interval = max(1, log_interval)
        self.logger = logger or get_logger(__name__)

        self.current = 0
        self._started = time.perf_counter()

        self.logger.info(f"Starting {name}: {total} items")

    @property
    def percent(self) -> float:
        return (self.current / self.total * 100) if self.total > 0 else 100.0

    def _rate(self):
        elapsed = time.perf_counter() - self._started
        return elapsed, (self.current / elapsed if elapsed > 0 else 0.0)

    def update(self, n: int = 1):
        self.current += n

        if self.current % self.log_interval == 0 or self.current == self.total:
            _, rate = self._rate()
            self.logger.info(
                f"{self.name}: {self.current}/{self.total} ({self.percent:.1f}%) - "
                f"{rate:.1f} items/s"
            )

    def finish(self):
        elapsed, rate = self._rate()
        self.logger.info(
            f"{self.name} complete: {self.current} items in {elapsed:.1f}s "
            f"({rate:.1f} items/s)"
        )


class LogContext:
    """
    Log the start, duration and outcome of a block; exceptions propagate.

    Example:
        >>> with LogContext('Random forest training', logger=logger):
        ...     trainer.train(dataset)
    """

    def __init__(self, operation: str, logger: Optional[logging.Logger] = None):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self._started = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.info(f"{self.operation} - Started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.perf_counter() - self._started

        if exc_type is None:
            self.logger.info(f"{self.operation} - Completed in {elapsed:.1f}s")
        else:
            self.logger.error(f"{self.operation} - Failed after {elapsed:.1f}s: {exc_val}")

        return False
