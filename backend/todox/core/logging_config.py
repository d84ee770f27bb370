"""Logging configuration for the API process."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process.

    Args:
        level: Name of the minimum level to emit, e.g. "DEBUG" or "INFO".
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)

    # SQL echo is controlled by SQL_ECHO; keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)
