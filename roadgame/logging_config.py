"""
Console logging setup shared by the app and the CLI runner.
"""

import logging

from . import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    root.setLevel(resolved)
    if any(getattr(h, "_roadgame", False) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._roadgame = True
    root.addHandler(handler)

    # Access logs duplicate what the game loggers already report.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
