"""
Logging Configuration

Sets up the root logger for the API process. Modules log through
logging.getLogger(__name__) and inherit this configuration.
"""

import logging
import sys

from lms_api.core.config import settings


def configure_logging() -> None:
    """
    Configure logging for the whole app.
    Call this once during FastAPI startup.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
