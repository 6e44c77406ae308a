import logging
import sys

logger = logging.getLogger("gateway")


def setup_logging(level: str = "INFO"):
    """
    Configures the root logger for the gateway process.
    Called once from the app lifespan. basicConfig leaves an already
    configured root logger alone, so a host process keeps its handlers.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - [%(levelname)s] - %(message)s",
        stream=sys.stdout,
    )
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Silence noisy libraries
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
