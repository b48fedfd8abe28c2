import logging
import sys

from gatekeeper.core import config


_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root = logging.getLogger("gatekeeper")
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger under the ``gatekeeper`` hierarchy."""
    _configure_root()
    if not name.startswith("gatekeeper"):
        name = f"gatekeeper.{name}"
    return logging.getLogger(name)
