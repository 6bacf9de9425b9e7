import logging
import sys

logger = logging.getLogger("jstat")


def configure_logging(log_level: int):
    logger.setLevel(log_level)
    formatter = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d|%(levelname)s|%(name)s:%(module)s:%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    logger.handlers = []
    logger.addHandler(handler)

    # Cleanup logging
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    logging.getLogger("paramiko").propagate = False
    logging.getLogger("paramiko").handlers = []
    logging.getLogger("paramiko").addHandler(handler)
