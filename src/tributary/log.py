import logging

LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Send tributary's logs to stderr and, optionally, a file.

    The library never installs handlers on import; call this from an
    application entry point.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    logger = logging.getLogger("tributary")
    logger.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
