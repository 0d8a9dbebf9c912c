import logging
import os


def configure_logging(level: str | int | None = None, log_file: str | None = "cortexrelay.log") -> None:
    """Install the relay's log format on the root logger.

    Meant for entry points; library modules only create loggers.
    *level* defaults to ``LOG_LEVEL`` from the environment, then INFO.
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True,
    )
