"""Process logging setup."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Attach a stream handler to the ``servicarr`` logger.

    Safe to call more than once; only the level is updated on later calls.

    Args:
        level: Standard logging level name.
    """
    global _configured
    root = logging.getLogger("servicarr")
    root.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
