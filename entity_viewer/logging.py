"""Logging helpers shared by the data-access layer."""

import logging
import sys
import time
from typing import TextIO

ROOT_LOGGER = "entity_viewer"


class _LogfmtFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        msg = record.getMessage().replace("\n", " ").replace('"', '\\"')
        line = f'ts={ts} level={record.levelname} logger={record.name} msg="{msg}"'
        if record.exc_info:
            exc = self.formatException(record.exc_info).replace("\n", " | ")
            line += f' exc="{exc}"'
        return line


def configure_logging(
    service_name: str = ROOT_LOGGER,
    level: str = "INFO",
    *,
    stream: TextIO | None = None,
) -> None:
    root = logging.getLogger()
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(service_name).setLevel(resolved)
    logging.getLogger(ROOT_LOGGER).setLevel(resolved)
    if root.handlers:
        return
    root.setLevel(resolved)
    h = logging.StreamHandler(stream or sys.stdout)
    h.setFormatter(_LogfmtFormatter())
    root.addHandler(h)


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the library namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
