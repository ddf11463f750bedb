import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a console handler to the application logger."""
    logger = logging.getLogger("app")
    logger.setLevel(level.upper())

    if not any(getattr(h, "_app_console", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._app_console = True
        logger.addHandler(handler)

    logger.propagate = False
    return logger
