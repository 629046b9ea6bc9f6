import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once per process entry point."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
