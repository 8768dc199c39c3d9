import logging

from config_promoter.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = None) -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
    )
    # PyGithub and httpx log every request at INFO
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
