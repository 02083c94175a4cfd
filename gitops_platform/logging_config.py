"""Logging for the engine driver CLI.

Code running inside the Pulumi program logs through `pulumi.log` instead, so
messages are attached to resources in the engine's output.
"""
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'
QUIET_LOGGERS = ('grpc', 'pulumi.automation')


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Warnings and errors go to stderr, or everything with `verbose`.

    `log_file` always receives DEBUG records, so a failed run can be inspected
    without rerunning it verbosely.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose or log_file else logging.INFO)
    root.handlers.clear()

    console = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
