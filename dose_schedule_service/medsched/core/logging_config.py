import logging

from medsched.core.config import LOG_LEVEL

_configured = False

def configure_logging(level: str = LOG_LEVEL) -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _configured = True
