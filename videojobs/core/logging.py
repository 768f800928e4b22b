import logging

from videojobs.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once for the API process or a Celery worker.

    VERBOSE_LOGGING=1 forces DEBUG so per-job poll details show up.
    """
    if settings.verbose_logging:
        resolved = logging.DEBUG
    else:
        resolved = logging.getLevelName((level or settings.log_level).upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("videojobs").setLevel(resolved)
    # httpx logs every request at INFO; keep it quiet unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if resolved == logging.DEBUG else logging.WARNING)
