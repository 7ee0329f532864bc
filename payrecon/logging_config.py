"""
Payrecon - Logging Configuration
"""

import logging
from typing import Optional

from payrecon.config import Settings, settings as default_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(config: Optional[Settings] = None) -> None:
    """
    Configure root logging for the engine.
    
    Debug mode forces DEBUG level; otherwise `log_level` is used.
    Safe to call more than once.
    """
    config = config or default_settings
    level = logging.DEBUG if config.debug else getattr(
        logging, config.log_level.upper(), logging.INFO
    )
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    
    # SQL echo is noisy outside debug sessions
    if not config.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
