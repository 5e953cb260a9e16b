"""Process-wide logging setup for the worker CLI and the control API."""

import logging

from blob_migrator.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Console output always; an additional append-mode file handler when
    ``LOG_FILE`` (or *log_file*) is set.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    path = log_file or settings.LOG_FILE
    if path:
        handlers.append(logging.FileHandler(path, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # requests/urllib3 connection chatter drowns out per-file lines
    logging.getLogger("urllib3").setLevel(logging.WARNING)
