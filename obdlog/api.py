"""Stable public API for building tooling on top of obdlog.

This module is the supported integration surface for third-party callers such
as dashboards or background services that embed the polling loop.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from obdlog.core.errors import (
    DeviceUnavailableError,
    ErrorKind,
    FileUnavailableError,
    FormulaError,
    MalformedDefinitionError,
    NotFoundError,
    ObdlogError,
)
from obdlog.core.model import ModuleTroubleCodes, RequestDefinition, Sample, TroubleCode
from obdlog.core.polling import LoopState, PollingLoop
from obdlog.core.service import ObdService
from obdlog.core.settings import Settings
from obdlog.core.telemetry import TelemetryLogger
from obdlog.core.vehicle import Vehicle
from obdlog.devices.base import Device, QueryHandle

LOGGER = logging.getLogger(__name__)

__all__ = [
    "ObdlogError",
    "ErrorKind",
    "DeviceUnavailableError",
    "FileUnavailableError",
    "FormulaError",
    "MalformedDefinitionError",
    "NotFoundError",
    "RequestDefinition",
    "Vehicle",
    "Sample",
    "TroubleCode",
    "ModuleTroubleCodes",
    "Device",
    "QueryHandle",
    "LoopState",
    "PollingLoop",
    "TelemetryLogger",
    "Settings",
    "Client",
]


class Client:
    """Public client wrapping vehicle loading, logging and trouble-code reads.

    `start_logging` resolves requests, then runs the polling loop on a
    background thread. Setting the returned `threading.Event` stops it at the
    next tick boundary. If the loop fails, the thread ends with the loop in
    `LoopState.FATAL` and the cause in `loop.error`.
    """

    def __init__(
        self,
        *,
        device: Device | None = None,
        settings: Settings | None = None,
        port: str | None = None,
    ) -> None:
        self._service = ObdService(device=device, settings=settings, port=port)

    def load_vehicle(self, name: str | Path) -> Vehicle:
        return self._service.load_vehicle(name)

    def trouble_codes(self, modules: Sequence[int]) -> list[ModuleTroubleCodes]:
        return self._service.trouble_codes(modules)

    def polling_loop(
        self,
        vehicle: Vehicle,
        *,
        refresh_ms: int | None = None,
        display: Callable[[Sequence[str]], None] | None = None,
        log_path: str | Path | None = None,
    ) -> PollingLoop:
        return self._service.polling_loop(
            vehicle,
            refresh_ms=refresh_ms,
            display=display,
            log_path=log_path,
        )

    def start_logging(
        self,
        vehicle: Vehicle,
        *,
        refresh_ms: int | None = None,
        log_path: str | Path | None = None,
    ) -> tuple[PollingLoop, threading.Event, threading.Thread]:
        loop = self.polling_loop(vehicle, refresh_ms=refresh_ms, log_path=log_path)
        loop.resolve()
        stop = threading.Event()
        thread = threading.Thread(target=_run_in_background, args=(loop, stop), name="obdlog-poller", daemon=True)
        thread.start()
        return loop, stop, thread

    def close(self) -> None:
        self._service.close()


def _run_in_background(loop: PollingLoop, stop: threading.Event) -> None:
    try:
        loop.run(stop)
    except ObdlogError as exc:
        LOGGER.error("Background logging stopped: %s", exc)
