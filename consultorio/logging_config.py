import logging
import sys

from .config import settings


def setup_logging(level: int | str | None = None) -> None:
    logger = logging.getLogger()
    if logger.handlers:
        return  # ya configurado (uvicorn, pytest, streamlit...)
    logger.setLevel(level if level is not None else settings.log_level)
    h = logging.StreamHandler(sys.stdout)
    h.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    ))
    logger.addHandler(h)
