import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
PACKAGE_LOGGERS = ("signing", "key_material")


def setup_logging(level=logging.INFO):
    """Attach one stdout handler to the package loggers; safe to call repeatedly."""
    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        if not logger.handlers:
            h = logging.StreamHandler(sys.stdout)
            h.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(h)
        logger.setLevel(level)
    return logging.getLogger("signing")
