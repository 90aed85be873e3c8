"""Runtime settings read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_REFRESH_MS = 1000
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    port: str | None = None
    refresh_ms: int = DEFAULT_REFRESH_MS
    log_dir: Path = Path(".")

    @property
    def interval_s(self) -> float:
        return self.refresh_ms / 1000.0


def _parse_refresh_ms(value: str | None) -> int:
    if not value:
        return DEFAULT_REFRESH_MS
    try:
        refresh_ms = int(value)
    except ValueError:
        refresh_ms = 0
    if refresh_ms <= 0:
        LOGGER.warning("Ignoring OBDLOG_REFRESH_MS=%r; using %d ms", value, DEFAULT_REFRESH_MS)
        return DEFAULT_REFRESH_MS
    return refresh_ms


def load_settings() -> Settings:
    return Settings(
        port=os.environ.get("OBDLOG_PORT") or None,
        refresh_ms=_parse_refresh_ms(os.environ.get("OBDLOG_REFRESH_MS")),
        log_dir=Path(os.environ.get("OBDLOG_LOG_DIR", ".")),
    )
