import os
import shutil
import gzip
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from colorama import Fore, Style


def gzip_in_place(path: str) -> Optional[str]:
    """Replace ``path`` by ``path.gz``; returns the new name, None if nothing was there."""
    if not os.path.exists(path):
        return None
    target = f"{path}.gz"
    with open(path, 'rb') as src, gzip.open(target, 'wb') as dst:
        shutil.copyfileobj(src, dst)
    os.remove(path)
    return target


class SafeRotatingFileHandler(RotatingFileHandler):
    """
    Size-rotating handler for long evolution runs. The newest backup is
    stored gzipped; a log file held open elsewhere is copied and truncated
    instead of renamed.
    """
    def rotate(self, source: str, dest: str) -> None:
        try:
            os.replace(source, dest)
        except PermissionError:
            try:
                shutil.copy2(source, dest)
                open(source, 'w').close()
            except OSError as e:
                logging.getLogger().error(f"[LOGGING] could not rotate {source}: {e}")

    def doRollover(self) -> None:
        try:
            super().doRollover()
        except FileNotFoundError:
            # stream is reopened on the next emit
            return
        if self.backupCount > 0:
            gzip_in_place(f"{self.baseFilename}.1")


class ColorFormatter(logging.Formatter):
    """Console formatter that tints each record by level."""
    COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno)
        if color is None:
            return message
        return f"{color}{message}{Style.RESET_ALL}"


def configure_logging(
    log_file_path: str = "rcd_evolution.log",
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 7,
    level: int = logging.DEBUG,
    console_level: Optional[int] = logging.INFO,
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S"
) -> None:
    """
    Configure the root logger: a SafeRotatingFileHandler for everything at
    ``level`` and, unless ``console_level`` is None, a colored stream handler.

    - log_file_path: path to the active log file
    - max_bytes:     file size threshold to trigger a rotation
    - backup_count:  how many rotated files to keep before oldest is purged
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    directory = os.path.dirname(log_file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    handler = SafeRotatingFileHandler(
        filename=log_file_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    logger.addHandler(handler)

    if console_level is not None:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(ColorFormatter(fmt="[%(levelname)s] %(message)s"))
        logger.addHandler(console)
