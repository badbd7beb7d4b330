import logging
import sys

from carbon_ledger.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def set_logger_and_children_level(logger_instance: logging.Logger, level: int):
    """Set the level of a logger, its handlers and every child logger below it."""
    logger_instance.setLevel(level)
    for handler in logger_instance.handlers:
        handler.setLevel(level)

    if not logger_instance.name or logger_instance.name == "root":
        return

    for name in list(logging.root.manager.loggerDict):
        if name.startswith(logger_instance.name + "."):
            child = logging.getLogger(name)
            child.setLevel(level)
            for handler in child.handlers:
                handler.setLevel(level)


def configure_logger(name: str = "carbon_ledger") -> logging.Logger:
    configured = logging.getLogger(name)
    if not configured.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        configured.addHandler(handler)
    configured.propagate = False
    set_logger_and_children_level(configured, getattr(logging, settings.LOG_LEVEL))
    return configured


logger = configure_logger()
uvicorn_logger = logging.getLogger("uvicorn")
uvicorn_access_logger = logging.getLogger("uvicorn.access")
fastapi_logger = logging.getLogger("fastapi")


def apply_log_level(level_name: str) -> dict[str, dict]:
    """Set every ledger and server logger to the named level.

    Returns:
        dict[str, dict]: Effective level and handler levels per logger name.
    """
    level = getattr(logging, level_name)
    loggers = (logger, uvicorn_logger, uvicorn_access_logger, fastapi_logger)
    for logger_instance in loggers:
        set_logger_and_children_level(logger_instance, level)

    return {
        logger_instance.name: {
            "effective_level": logging.getLevelName(logger_instance.getEffectiveLevel()),
            "handlers": [
                f"{type(handler).__name__}:{logging.getLevelName(handler.level)}"
                for handler in logger_instance.handlers
            ],
        }
        for logger_instance in loggers
    }
