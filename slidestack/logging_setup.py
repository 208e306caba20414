"""Configures application-wide logging."""

import logging
import logging.handlers
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_HANDLER_NAME = "slidestack"


def get_app_data_dir() -> Path:
    """Returns the directory holding slidestack.ini and the logs.

    SLIDESTACK_HOME wins, then %APPDATA%/slidestack, then ~/.slidestack.
    """
    home = os.getenv("SLIDESTACK_HOME")
    if home:
        return Path(home)
    app_data = os.getenv("APPDATA")
    if app_data:
        return Path(app_data) / "slidestack"
    return Path.home() / ".slidestack"


def setup_logging(debug: bool = False) -> Path:
    """Logs to a rotating file in the app data directory, and to stderr in debug mode.

    Calling it again replaces the handlers installed by the previous call.
    """
    log_file = get_app_data_dir() / "logs" / "slidestack.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for old in [h for h in root_logger.handlers if h.get_name() == _HANDLER_NAME]:
        root_logger.removeHandler(old)
        old.close()

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.handlers.RotatingFileHandler(log_file, maxBytes=10 * 1024**2, backupCount=5)]
    if debug:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Decoding and page loading are chatty; keep them visible in the file
    for name in ("slidestack.imaging.decoder", "slidestack.imaging.loader"):
        logging.getLogger(name).setLevel(logging.DEBUG)
    logging.getLogger("PIL").setLevel(logging.INFO)
    return log_file
