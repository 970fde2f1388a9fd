import logging
import sys

from config.settings import Settings

_HANDLER_NAME = "secureforward-console"


def setup_logging(verbose: bool = False, stream=None) -> logging.Logger:
    """Attach a console handler to the root logger; return the app logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else Settings.LOG_LEVEL)

    for handler in list(root_logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.set_name(_HANDLER_NAME)
    console_handler.setFormatter(logging.Formatter(
        Settings.LOG_FORMAT, datefmt=Settings.LOG_DATEFMT,
    ))
    root_logger.addHandler(console_handler)
    return logging.getLogger(Settings.APP_NAME)
