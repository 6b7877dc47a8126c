"""Logging configuration for Klu Core."""

import logging
import sys

from klu.config import LOG_LEVEL


def setup_logging(level: str | int = LOG_LEVEL) -> logging.Logger:
    """
    Configure the "klu" logger.

    Records go to stdout through one handler and do not propagate to the
    root logger, so uvicorn's basicConfig does not print them twice.
    KLU_LOG_LEVEL picks the level (DEBUG shows cache and guardrail decisions).
    """
    logger = logging.getLogger("klu")
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)

    return logger


logger = setup_logging()
