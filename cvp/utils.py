import logging
import pathlib
from logging.handlers import RotatingFileHandler

from cvp.constants import (
    CVP_LOGGING_BACKUP_COUNT,
    CVP_LOGGING_FORMAT,
    CVP_LOGGING_LOG_LEVEL,
    CVP_LOGGING_MAX_BYTES,
    CVP_SUPPORTED_EXT_FTYPE,
)


def get_logger(name: str, level: int = CVP_LOGGING_LOG_LEVEL, log_path: pathlib.Path | None = None) -> logging.Logger:
    logger = logging.getLogger(name)

    if logger.hasHandlers():
        return logger

    logger.setLevel(level or CVP_LOGGING_LOG_LEVEL)
    formatter = logging.Formatter(CVP_LOGGING_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level or CVP_LOGGING_LOG_LEVEL)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_path:
        if not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)

        rot_file_handler = RotatingFileHandler(
            log_path,
            maxBytes=CVP_LOGGING_MAX_BYTES,
            backupCount=CVP_LOGGING_BACKUP_COUNT,
        )
        rot_file_handler.setLevel(level or CVP_LOGGING_LOG_LEVEL)
        rot_file_handler.setFormatter(formatter)
        logger.addHandler(rot_file_handler)

    return logger


def get_filetype(file_path: pathlib.Path) -> str | None:
    if not file_path.exists():
        return None

    return CVP_SUPPORTED_EXT_FTYPE.get(file_path.suffix.lower().lstrip("."))


def ensure_dir(path: pathlib.Path, logger: logging.Logger | None = None) -> pathlib.Path:
    if not path.exists():
        if logger:
            logger.warning(f"Directory does not exist, creating it: {path}")
        path.mkdir(parents=True, exist_ok=True)
    return path
