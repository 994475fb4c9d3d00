"""
Root logger configuration for the gateway.

main.py calls ``setup_logging()`` once before the config is read, so a
ConfigError is still printed, and again with LOG_LEVEL / LOG_FILE once it is.
The second call adjusts the existing console handler instead of adding one.
"""
import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Chatty at INFO, only interesting when debugging
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


def _resolve_level(level):
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _has_file_handler(root, path):
    target = os.path.abspath(path)
    return any(
        isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target
        for h in root.handlers
    )


def setup_logging(log_file=None, level=logging.INFO):
    """
    Configure the root logger.

    Args:
        log_file: Optional log file path; parent directories are created
        level: A logging constant or a level name such as "DEBUG"

    Returns:
        The root logger
    """
    level = _resolve_level(level)
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if root.handlers:
        for handler in root.handlers:
            handler.setLevel(level)
    else:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)

    if log_file and not _has_file_handler(root, log_file):
        try:
            folder = os.path.dirname(log_file)
            if folder:
                os.makedirs(folder, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            root.warning(f"Could not create log file {log_file}: {e}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return root


__all__ = ['setup_logging']
