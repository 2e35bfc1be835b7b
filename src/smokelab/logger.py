import logging
import os
import sys
import traceback

from colorlog import ColoredFormatter

from smokelab import constants as CONSTANTS

LOGGER_NAME = "smokelab"

LOG_COLORS = {
    "DEBUG":    "cyan",
    "INFO":     "green",
    "WARNING":  "yellow",
    "ERROR":    "red",
    "CRITICAL": "red,bg_white",
}

# fan-out workers log concurrently; debug output names the thread
INFO_FORMAT = "%(log_color)s[%(levelname)s] %(message)s"
DEBUG_FORMAT = "%(log_color)s[%(levelname)s] %(threadName)s %(name)s: %(message)s"

DEBUG_MODE = False


def setup_logger(debug_mode=False):
    """Configure the ``smokelab`` logger tree; module loggers inherit it."""
    global DEBUG_MODE
    DEBUG_MODE = debug_mode

    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if debug_mode else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        logger.addHandler(logging.StreamHandler(sys.stdout))

    formatter = ColoredFormatter(DEBUG_FORMAT if debug_mode else INFO_FORMAT, log_colors=LOG_COLORS)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    return logger


def get_debug_mode():
    return DEBUG_MODE


def print_stack_trace():
    if get_debug_mode():
        logger.error(traceback.format_exc())


def debug_from_env():
    return os.environ.get(CONSTANTS.ENV_DEBUG, "").lower() in ("1", "true", "yes", "debug")


logger = setup_logger(debug_mode=debug_from_env())
