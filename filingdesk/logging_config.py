"""
FilingDesk - Logging Configuration

Single entry point for configuring the standard library logger used by
every module (``logging.getLogger(__name__)``).
"""

import logging

from filingdesk.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure root logging once per process."""
    global _configured
    if _configured:
        return

    resolved = (level or settings.log_level).upper()
    if settings.debug:
        resolved = "DEBUG"

    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
    )
    # SQL echo is controlled by settings.debug on the engine
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
