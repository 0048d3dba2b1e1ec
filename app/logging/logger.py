import logging
import sys
from typing import TextIO

_FORMAT = "%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s"


class Log:
    """Centralized logging for the ingestion pipeline.

    Lines carry the thread name so per-image work on the ingest pool
    (threads named ingest_N) can be told apart from the calling thread.
    """

    _logger: logging.Logger = logging.getLogger("medidoc")

    @classmethod
    def configure(cls, log_level: str, stream: TextIO | None = None) -> None:
        """Set the level and attach a single stream handler (stdout by default)."""
        cls._logger.setLevel(log_level.upper())
        if cls._logger.handlers:
            return
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        cls._logger.addHandler(handler)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        cls._logger.debug(message, extra=kwargs)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def exception(cls, message: str, **kwargs: object) -> None:
        """Log at error level with the active exception's traceback."""
        cls._logger.exception(message, extra=kwargs)
