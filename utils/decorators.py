#!/usr/bin/env python3
"""
Decorators for the Monte Carlo pipeline stages.

``log_errors`` reports a failing stage, with the structured ``details`` of
package exceptions sent to the debug log, and then re-raises by default so
the whole Monte Carlo aborts. ``timed`` reports how long a stage took.
``log_step`` is re-exported from the logging utilities.
"""
import functools
import time
import traceback
from typing import Any, Callable, Iterable, Optional, Tuple, Type, TypeVar, Union, cast

from utils.logging_utils import logger, log_step

F = TypeVar('F', bound=Callable[..., Any])
ExceptionTypes = Union[Type[BaseException], Iterable[Type[BaseException]]]

__all__ = ['log_errors', 'timed', 'log_step']

# Longest argument repr written to the debug log
MAX_ARGUMENT_REPR = 200


def _exception_tuple(expected: ExceptionTypes) -> Tuple[Type[BaseException], ...]:
    if isinstance(expected, type):
        return (expected,)
    return tuple(expected)


def _short_repr(value: Any) -> str:
    text = repr(value)
    if len(text) <= MAX_ARGUMENT_REPR:
        return text
    shape = getattr(value, "shape", None)
    if shape is not None:
        return f"{type(value).__name__}(shape={shape})"
    return f"{type(value).__name__}(...)"


def log_errors(expected_exceptions: ExceptionTypes = Exception,
               msg: str = "Error in {func_name}",
               reraise: bool = True,
               default_return: Any = None,
               log_args: bool = False) -> Callable[[F], F]:
    """
    Log exceptions of the expected types raised by the wrapped function.

    Other exceptions pass through without being logged.

    Args:
        expected_exceptions: Exception type, or an iterable of types, to log
        msg: Message prefix; ``{func_name}`` is replaced by the function name
        reraise: Re-raise after logging (default), otherwise return ``default_return``
        default_return: Value returned when ``reraise`` is False
        log_args: Also write the call arguments to the debug log; arrays
            are summarised by their shape
    """
    caught = _exception_tuple(expected_exceptions)

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except caught as e:
                logger.error(f"{msg.format(func_name=func.__name__)}: {getattr(e, 'message', e)}")
                details = getattr(e, "details", None)
                if details:
                    logger.debug(f"Error details: {details}")
                logger.debug("Traceback:\n" + traceback.format_exc())
                if log_args:
                    arguments = [_short_repr(arg) for arg in args]
                    arguments += [f"{key}={_short_repr(value)}" for key, value in kwargs.items()]
                    logger.debug(f"Called {func.__name__}({', '.join(arguments)})")
                if reraise:
                    raise
                return default_return

        return cast(F, wrapper)
    return decorator


def timed(*args: Any, log_level: str = "info", step_name: Optional[str] = None) -> Any:
    """
    Log the wall-clock duration of the wrapped function, also when it raises.

    Usable as ``@timed``, ``@timed()`` or ``@timed("Monte Carlo", log_level="debug")``.
    """
    def decorate(func: Callable[..., Any], name: Optional[str]) -> Callable[..., Any]:
        label = name or func.__name__

        @functools.wraps(func)
        def wrapper(*f_args: Any, **f_kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                return func(*f_args, **f_kwargs)
            finally:
                elapsed = time.perf_counter() - started
                getattr(logger, log_level.lower())(f"{label} took {elapsed:.2f}s")

        return wrapper

    if len(args) == 1 and callable(args[0]):
        return decorate(args[0], step_name)
    name = args[0] if args and isinstance(args[0], str) else step_name
    return functools.partial(decorate, name=name)
