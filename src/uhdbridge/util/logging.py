# -*- coding: utf-8 -*-
"""
Loguru setup for the bridge server.

The bridge logs through the shared `loguru.logger`. `start_server_log` swaps
the default stderr sink for an enqueued file sink and/or a colourised console
sink; enqueueing keeps the streaming worker from blocking on log I/O.
"""

import os
import pathlib
import sys
import traceback

from loguru import logger

from .defaults import CONFIG_DIR, DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def resolve_log_level(
    log_level: str = DEFAULT_LOGLEVEL,
    debug: bool = False,
    verbose: bool = False,
    quiet: int = 0,
) -> str:
    """Combine the legacy logger flags into a single loguru level name.

    `--debug` and `--verbose` win over an explicit level; each `--quiet`
    drops one step from whatever level was chosen. SUCCESS is accepted as
    a level but skipped when stepping, so `-q` from INFO gives WARNING.
    """
    levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = log_level.upper()
    if level not in levels:
        raise ValueError(f"Unknown log level {log_level!r}, expected one of {levels}")
    if not quiet:
        return level
    steps = [lvl for lvl in levels if lvl != "SUCCESS"]
    idx = steps.index("INFO" if level == "SUCCESS" else level)
    return steps[min(idx + quiet, len(steps) - 1)]


def start_server_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if log_path is None or log_path == "":
        log_path = log_default_path_server()
    else:
        log_path = os.path.abspath(log_path)

    if clear_prev:
        clear_log(log_path)

    # first remove (default) stderr output
    logger.remove()

    if log_to_file:
        pathlib.Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
    if log_to_file:
        logger.info("Server log started at {}", log_path)
    else:
        logger.info("Server log started.")


def log_default_path_server() -> str:
    return str(CONFIG_DIR / "server.log")


def clear_log(log_path: str):
    """
    Clear the log file at the given path, if it exists.

    Arguments
    ---------
    log_path : str
        The path to the log file. Default path is log_default_path_server().
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                f"Could not clear log file {log_path}. Permission denied. Continuing."
            )


def shutdown_server_log():
    try:
        logger.info("Closing down server log.")
        logger.complete()
        logger.remove()
    except Exception:
        logger.exception("Error shutting down server log - skipping.")
