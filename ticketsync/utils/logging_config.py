import logging
from typing import Optional

from ticketsync.utils.constants import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for processes embedding the sync core."""
    level = (level or Settings().LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )

    # The realtime client is chatty at INFO
    logging.getLogger("realtime").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
