# -*- coding: utf-8 -*-
"""
Loguru setup for dtdaq client sessions.

The client logs wire traffic at TRACE, fetch state changes at DEBUG,
connects/disconnects at INFO and failures at WARNING/ERROR. Nothing is
emitted to a file until `start_client_log` is called.
"""

import os
import pathlib
import sys
import traceback

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG

_client_log_path = ""


def format_error_response() -> str:
    """Traceback of the exception being handled, for error log lines."""
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    return err_str


def log_default_path_client() -> str:
    return str(pathlib.Path.home() / ".dtdaq" / "client.log")


def start_client_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    """Replace loguru's default sink with the dtdaq client sinks.

    Parameters
    ----------
    log_to_file : bool
        Write to `log_path`
    log_to_stdout : bool
        Also write (colourised) to stderr
    log_path : str, optional
        Log file, defaults to ~/.dtdaq/client.log
    clear_prev : bool
        Delete an existing log file first
    log_level : str
        Minimum level for every sink
    """
    global _client_log_path

    log_path = os.path.abspath(log_path) if log_path else log_default_path_client()
    if clear_prev:
        clear_log(log_path)

    logger.remove()
    if log_to_file:
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
        _client_log_path = log_path
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)

    if log_to_file:
        logger.info("Client log started at {}", log_path)
    else:
        logger.info("Client log started.")


def clear_log(log_path: str):
    """Delete the log file at `log_path`, if it exists."""
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error("Could not clear log file {}. Permission denied.", log_path)


def shutdown_client_log():
    """Flush and remove every sink."""
    global _client_log_path

    logger.info("Closing down client log.")
    # waits for enqueued messages to be written
    logger.remove()
    _client_log_path = ""


def get_log_filename() -> str:
    """Path of the active client log file, "" if none."""
    return _client_log_path
