from __future__ import annotations

import logging
from typing import Dict, Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    module_levels: Optional[Dict[str, str]] = None,
) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=_level(level),
        format=DEFAULT_FORMAT,
        handlers=handlers,
    )
    # per-logger overrides, e.g. {"speedwatch.io.capture": "DEBUG"}
    for name, lvl in (module_levels or {}).items():
        logging.getLogger(str(name)).setLevel(_level(str(lvl)))


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)
