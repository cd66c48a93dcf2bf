# formbuilder/core/logging_config.py
import logging
import sys
from typing import Optional

from . import config

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Konfiguriert das Root-Logging einmalig für die Anwendung."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    if not any(getattr(h, "_formbuilder", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._formbuilder = True
        root.addHandler(handler)

    # SQL-Echo läuft über den Engine-Logger, nicht über print
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if config.DB_ECHO else logging.WARNING
    )
    return logging.getLogger("formbuilder")
