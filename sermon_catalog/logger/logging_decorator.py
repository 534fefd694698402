"""
Logging setup and decorators shared by every sermon_catalog subsystem.

Each subsystem owns a named logger writing to its own file under the log
directory (``LOG_DIR``, default ``logs/``):

    logger = setup_logging("worker", "logs/worker.log", verbose=True)

    @log_function(logger_name="worker", log_execution_time=True)
    def run_pipeline(entry_id, media_url):
        ...
"""

import functools
import logging
import os
import time
from pathlib import Path
from typing import Optional, Callable, Any


def _resolve_log_path(log_file: str) -> Path:
    """Re-root ``logs/...`` paths under ``LOG_DIR`` when it is set."""
    log_dir = os.getenv("LOG_DIR")
    path = Path(log_file)
    if log_dir and path.parts and path.parts[0] == "logs":
        return Path(log_dir).joinpath(*path.parts[1:])
    return path


def setup_logging(
    logger_name: str,
    log_file: str = "logs/sermon_catalog.log",
    verbose: bool = False,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure a named logger with a file handler and an optional console handler.

    Calling it twice for the same name returns the already configured logger,
    except that ``verbose=True`` adds the console handler if it is missing
    (CLIs enable it after module-level loggers were created).

    Args:
        logger_name: Logger name (e.g. "reconcile")
        log_file: Log file path (default: "logs/sermon_catalog.log")
        verbose: Add a DEBUG console handler
        level: Base level for the file handler

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        if verbose and not any(
            getattr(h, "_console", False) for h in logger.handlers
        ):
            logger.setLevel(logging.DEBUG)
            logger.addHandler(_console_handler())
        return logger

    logger.setLevel(logging.DEBUG if verbose else level)

    log_path = _resolve_log_path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(file_handler)

    if verbose:
        logger.addHandler(_console_handler())

    return logger


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler._console = True  # type: ignore[attr-defined]
    return handler


def log_function(
    logger_name: Optional[str] = None,
    level: int = logging.INFO,
    log_args: bool = False,
    log_result: bool = False,
    log_execution_time: bool = True,
) -> Callable:
    """
    Decorator logging entry, exit, duration and exceptions of a function.

    Exceptions are logged with traceback and re-raised unchanged.

    Args:
        logger_name: Logger to use (default: the function's module name)
        level: Level for entry/exit messages
        log_args: Include call arguments in the entry message
        log_result: Include the return value in the exit message
        log_execution_time: Include the duration in the exit message

    Example:
        @log_function(logger_name="reconcile", log_execution_time=True)
        def reconcile(candidates, store):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            name = logger_name or func.__module__
            logger = logging.getLogger(name)
            if not logger.handlers:
                logger = setup_logging(name, level=level)

            func_name = func.__name__
            entry_msg = f"Calling {func_name}"
            if log_args and (args or kwargs):
                rendered = [repr(a) for a in args]
                rendered += [f"{k}={v!r}" for k, v in kwargs.items()]
                entry_msg += f" with args: {', '.join(rendered)}"
            logger.log(level, entry_msg)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = time.time() - start_time
                logger.error(
                    f"Exception in {func_name} after {elapsed:.2f}s: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
                raise

            exit_msg = f"Completed {func_name}"
            if log_execution_time:
                exit_msg += f" in {time.time() - start_time:.2f}s"
            if log_result:
                exit_msg += f" with result: {result!r}"
            logger.log(level, exit_msg)
            return result

        return wrapper

    return decorator
