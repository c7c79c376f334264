from __future__ import annotations

import logging
from typing import Optional

_DEFAULT_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DEFAULT_DATEFMT = "%H:%M:%S"

# Loggers that are chatty at INFO/DEBUG without telling us anything about Salesforce
_NOISY_LOGGERS = ("urllib3.connection", "urllib3.connectionpool", "asyncio")


def configure_logging(level: Optional[int], *, quiet_http: bool = True) -> None:
    """Configure root logging once; later calls only change the level."""
    lvl = level if level is not None else logging.WARNING
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(lvl)
    else:
        logging.basicConfig(level=lvl, format=_DEFAULT_FMT, datefmt=_DEFAULT_DATEFMT)

    if not quiet_http:
        return
    for name in _NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        if noisy.level == logging.NOTSET or noisy.level < logging.WARNING:
            noisy.setLevel(logging.WARNING)
