"""Logging setup shared by the server and the CLI."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logger = logging.getLogger("kubeport")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)
    # kubernetes client request logging is too chatty below WARNING
    logging.getLogger("kubernetes").setLevel(max(logging.WARNING, root.level))
