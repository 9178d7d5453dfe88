import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_videogen_logging_configured", False):
        return logging.getLogger("videogen")

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    logging.captureWarnings(True)
    setattr(root, "_videogen_logging_configured", True)
    return logging.getLogger("videogen")


logger = logging.getLogger("videogen")
