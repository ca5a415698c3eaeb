#!/usr/bin/env python3
"""
Logging utilities for the nonparametric demand Monte Carlo.

All modules log through one named logger, ``NPDemand_MC``, obtained with
``get_logger()``. The command line entry point reconfigures it once from the
validated settings (level and optional log file inside the results
directory); before that a stdout handler at INFO level is installed lazily.

Runs are long and mostly numeric, so besides plain messages this module
offers:
- ``log_step``, which brackets a pipeline stage with start, end and timing
- ``LoggingManager.log_array_info``, a one-line summary of a result buffer
- ``LoggingManager.log_dict``, a JSON dump of settings or statistics
"""
import functools
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar, Union

F = TypeVar('F', bound=Callable[..., Any])

LOGGER_NAME = 'NPDemand_MC'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _stdout_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    return handler


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


class LoggerProvider:
    """
    Holds the logger shared by the simulation, model and reporting layers.

    ``LoggingManager.setup_logging`` replaces the instance, so code that
    must follow reconfiguration calls ``get_logger()`` at use time.
    """
    _logger: Optional[logging.Logger] = None

    @classmethod
    def get_logger(cls) -> logging.Logger:
        if cls._logger is None:
            log = logging.getLogger(LOGGER_NAME)
            if not log.handlers:
                log.addHandler(_stdout_handler(logging.Formatter(LOG_FORMAT)))
                log.setLevel(logging.INFO)
            cls._logger = log
        return cls._logger


def get_logger() -> logging.Logger:
    """Get the Monte Carlo logger."""
    return LoggerProvider.get_logger()


# Module-level logger for helpers that do not need to follow reconfiguration
logger = get_logger()


def log_step(step_name: Optional[str] = None) -> Callable[[F], F]:
    """
    Bracket a pipeline stage with start and end messages.

    Works bare (``@log_step``) or with a label (``@log_step("Saving results")``).
    A failing stage logs the error, reports how long it ran and re-raises.
    """
    def decorator(func: F) -> F:
        label = step_name if isinstance(step_name, str) else func.__name__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_logger()
            log.info(f"Step '{label}' started")
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(f"Step '{label}' failed after {time.perf_counter() - started:.2f}s: {e}")
                raise
            log.info(f"Step '{label}' finished in {time.perf_counter() - started:.2f}s")
            return result

        return wrapper

    if callable(step_name):
        return decorator(step_name)
    return decorator


class LoggingManager:
    """Configuration of the Monte Carlo logger and structured log helpers."""

    @staticmethod
    def setup_logging(
        logger_name: str = LOGGER_NAME,
        log_level: Union[int, str] = logging.INFO,
        log_file: Optional[Union[str, Path]] = None,
        suppress_warnings: bool = False,
        log_format: str = LOG_FORMAT
    ) -> logging.Logger:
        """
        (Re)configure the logger and make it the shared instance.

        Existing handlers are dropped, so repeated calls do not duplicate
        output.

        Args:
            logger_name: Name of the logger
            log_level: Level as a number or a name such as "DEBUG"
            log_file: Optional file that receives a copy of every message;
                its directory is created when missing
            suppress_warnings: Silence Python warnings (e.g. convergence
                warnings from scikit-learn) for the rest of the process
            log_format: Format string for both handlers

        Returns:
            The configured logger
        """
        formatter = logging.Formatter(log_format)
        log = logging.getLogger(logger_name)
        log.setLevel(_resolve_level(log_level))
        for handler in list(log.handlers):
            log.removeHandler(handler)
            handler.close()

        log.addHandler(_stdout_handler(formatter))
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            log.addHandler(file_handler)

        if suppress_warnings:
            import warnings
            warnings.filterwarnings('ignore')

        LoggerProvider._logger = log
        return log

    @staticmethod
    def log_array_info(log: logging.Logger, name: str, array: Any) -> None:
        """Log the shape of a result buffer and, at debug level, its finite range."""
        log.info(f"Array '{name}' shape: {array.shape}")
        finite = array[array == array]
        if finite.size:
            log.debug(f"Array '{name}' range: [{finite.min():.4f}, {finite.max():.4f}], "
                      f"{array.size - finite.size} missing")

    @staticmethod
    def log_dict(
        log: logging.Logger,
        title: str,
        data: Dict[str, Any],
        level: str = 'info'
    ) -> None:
        """Log a settings or statistics dictionary as indented JSON under a title."""
        getattr(log, level.lower())(f"{title}:\n{json.dumps(data, indent=2, default=str)}")
