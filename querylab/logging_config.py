import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("querylab")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO),
                        format=LOG_FORMAT)
    logger.setLevel(logging.getLogger().level)
    return logger
