import logging

from kindred.core.config import LOG_LEVEL


def get_logger(name: str, tag: str) -> logging.Logger:
    """
    Return a console logger whose lines read ``LEVEL: [TAG] message``.

    Handlers are attached once per logger name, so calling this at import
    time from several modules is safe.
    """
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(LOG_LEVEL)
        formatter = logging.Formatter(f"%(levelname)s: [{tag}] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
    return logger
