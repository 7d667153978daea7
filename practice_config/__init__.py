"""
practice_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_engine_settings()`` is the only way runtime code obtains its
    tunables (staleness threshold, handler defaults, edit-validation
    limits).  Services receive an ``EngineSettings`` instance through
    their constructors and never read files themselves.

Failure modes:
    - ``FileNotFoundError`` -- an explicit settings path does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- unknown sections/keys or invalid values.
"""

from __future__ import annotations

import logging
from pathlib import Path

from practice_config.settings import EngineSettings, load_settings

_logger = logging.getLogger("practice_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Load engine settings from ``path`` or the packaged defaults."""
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(settings_path)
    _logger.info(
        "engine_settings_loaded",
        extra={
            "settings_path": str(settings_path),
            "stale_reservation_seconds": settings.stale_reservation_seconds,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "EngineSettings",
    "get_engine_settings",
    "load_settings",
]
