"""Logging configuration for the presence bot farm.

Sets up a dual-handler logging pipeline on the root logger:

1. **Console** -- :class:`SafeStreamHandler`, which never lets an
   emoji-laden status line crash a console with a narrow code page.
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/presence_bot.log`` with gzip rotation (10 MiB per file,
   5 backups).

Chatty third-party loggers (aiohttp access/server, asyncio) are capped at
``WARNING`` unless the farm itself runs at ``DEBUG``.

Usage::

    from core.logging_setup import setup_logging
    setup_logging("DEBUG")
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
DEFAULT_LOG_FILE = os.path.join("logs", "presence_bot.log")
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

QUIET_LOGGERS = ("aiohttp.access", "aiohttp.server", "asyncio")


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that gzip-compresses rotated log files."""

    def rotation_filename(self, default_name: str) -> str:
        """Append ``.gz`` to the rotated file name."""
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* and remove *source*."""
        with open(source, 'rb') as f_in:
            with gzip.open(dest, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that degrades unencodable characters instead of failing.

    Status lines carry emoji; consoles whose encoding cannot represent
    them get the line re-encoded with replacement characters.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            try:
                self.stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(self.stream, "encoding", None) or "ascii"
                safe_msg = msg.encode(encoding, errors="replace").decode(encoding)
                self.stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = DEFAULT_LOG_FILE) -> None:
    """Configure the root logger with console and (optionally) file output.

    Safe to call more than once: existing root handlers are replaced.

    Args:
        log_level: Logging level name (e.g. ``"DEBUG"``, ``"INFO"``).
            Unknown names fall back to ``INFO``.
        log_file: Path of the rotating log file, or ``None`` to log to
            the console only.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handlers: list = [SafeStreamHandler(sys.stdout)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            CompressedRotatingFileHandler(
                log_file,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUPS,
                encoding='utf-8',
            )
        )

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    third_party_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
