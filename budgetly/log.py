# budgetly/log.py
# Role: Logger factory for every Budgetly module.
#       One stdout handler per named logger, plus LOG_FILE when set.

import logging
import os


def get_logger(name: str) -> logging.Logger:
    """
    Logger for `name`, configured on first use.

    LOG_LEVEL (default INFO) and LOG_FILE are read from the environment.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").strip().upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(levelname)-7s %(name)s %(message)s")

    handlers = [logging.StreamHandler()]
    log_file = os.environ.get("LOG_FILE")
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Root handlers (uvicorn's) would print every line twice
    logger.propagate = False
    return logger
