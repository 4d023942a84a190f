import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_FORMAT = "%(message)s"


def setup_logger(name: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Return a logger that renders through rich.

    The RichHandler is attached once to the root logger so module loggers
    created with logging.getLogger(__name__) share it. Log output goes to
    stderr, leaving stdout to command results.
    """
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="[%X]"))
        root.addHandler(handler)
    root.setLevel(level)
    return logging.getLogger(name)
