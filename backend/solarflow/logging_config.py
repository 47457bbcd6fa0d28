"""Logging setup for processes embedding the timeline core."""
import logging
from typing import Optional

from solarflow.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once, using LOG_LEVEL unless a level is given."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
    )
    # SQL statement logging is controlled by SQL_ECHO, not LOG_LEVEL
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
