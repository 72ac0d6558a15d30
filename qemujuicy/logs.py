import logging
import os
import sys
from typing import Iterable, Mapping, Optional

from qemujuicy.errors import ConfigError

LOGGER_NAME = "qemujuicy"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# substrings of environment variable names worth logging on startup
ENV_KEYWORDS = (
    "PATH", "LANG", "LOGNAME", "LANGUAGE", "SHELL", "DESKTOP", "USER", "HOME",
    "LOCAL", "PROCESSOR", "PROGRAM", "OS", "COMPUTER", "WIN",
)


def init_logging(log_path: str, verbose: bool = True) -> logging.Logger:
    try:
        file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write log file '{log_path}': {e}") from e

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)

    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(error_handler)

    if verbose:
        verbose_handler = logging.StreamHandler(sys.stdout)
        verbose_handler.setLevel(logging.INFO)
        verbose_handler.addFilter(lambda record: record.levelno < logging.ERROR)
        verbose_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(verbose_handler)
    return logger


def log_environment(environ: Optional[Mapping[str, str]] = None, keywords: Iterable[str] = ENV_KEYWORDS):
    logger = logging.getLogger(LOGGER_NAME)
    environ = os.environ if environ is None else environ
    for key in sorted(environ):
        upper = key.upper()
        if any(word in upper for word in keywords):
            logger.debug("Env - %s -> %s", key, environ[key])


def flush():
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
