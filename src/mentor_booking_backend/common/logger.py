'''
universal logger
'''
# In src/mentor_booking_backend/common/logger.py
import logging
import sys

from .config import settings

def setup_logger(name: str = 'MB-backend', level: str | None = None) -> logging.Logger:
    """
    Configures and returns the application logger.
    The level comes from LOG_LEVEL; httpx request lines are kept at WARNING
    so email dispatch does not log every POST twice.
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or settings.LOG_LEVEL).upper())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'
        ))
        logger.addHandler(handler)

    logging.getLogger('httpx').setLevel(logging.WARNING)
    return logger

# Create a single logger instance to be imported by other modules
log = setup_logger()
