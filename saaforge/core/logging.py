from __future__ import annotations

import logging

from saaforge.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Install a single stream handler so repeated create_app() calls do not duplicate output.
    settings = get_settings()
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    if not any(getattr(handler, "_saaforge", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._saaforge = True  # type: ignore[attr-defined]
        root.addHandler(handler)
