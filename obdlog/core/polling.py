"""Polling loop: resolve once, then sample, render and log on every tick."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from obdlog.core.errors import FileUnavailableError, ObdlogError
from obdlog.core.model import RequestDefinition, Sample
from obdlog.core.resolver import resolve_requests
from obdlog.core.telemetry import TelemetryLogger
from obdlog.core.vehicle import Vehicle
from obdlog.devices.base import Device, QueryHandle

NO_RESPONSE = "No response"
DEFAULT_INTERVAL_S = 1.0
LOGGER = logging.getLogger(__name__)


class LoopState(Enum):
    RESOLVING = "resolving"
    SAMPLING = "sampling"
    STOPPED = "stopped"
    FATAL = "fatal"


@dataclass(frozen=True)
class DisplayLayout:
    """Column layout computed once from the full set of bound requests."""

    label_width: int

    @classmethod
    def for_requests(cls, requests: Iterable[RequestDefinition]) -> DisplayLayout:
        return cls(label_width=max((len(r.label) + 2 for r in requests), default=0))

    def render(self, sample: Sample) -> str:
        return f"{sample.request.label + ': ':<{self.label_width}}{sample.text}"


def format_raw(data: bytes) -> str:
    if not data:
        return NO_RESPONSE
    return " ".join(f"{b:02x}" for b in data)


def format_value(value: float, unit: str) -> str:
    if math.isnan(value):
        return NO_RESPONSE
    return f"{value:g}{unit}"


def sample_query(request: RequestDefinition, handle: QueryHandle) -> Sample:
    """Read one bound query. Failures are reported as no response."""
    try:
        raw = handle.current_raw_bytes()
        if not request.formula:
            return Sample(request, format_raw(raw), math.nan)
        value = float(handle.current_value())
    except Exception as exc:
        LOGGER.warning("Reading %s failed: %s", request.label, exc)
        return Sample(request, NO_RESPONSE, math.nan)
    return Sample(request, format_value(value, request.unit), value)


class PollingLoop:
    def __init__(
        self,
        device: Device,
        vehicle: Vehicle,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        display: Callable[[Sequence[str]], None] | None = None,
        log_path: str | Path | None = None,
        log_dir: str | Path | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.device = device
        self.vehicle = vehicle
        self.interval_s = interval_s
        self.state = LoopState.RESOLVING
        self.bound: dict[RequestDefinition, QueryHandle] = {}
        self.layout = DisplayLayout(label_width=0)
        self.logger: TelemetryLogger | None = None
        self.error: ObdlogError | None = None
        self._display = display
        self._log_path = log_path
        self._log_dir = log_dir
        self._now = now

    def resolve(self) -> dict[RequestDefinition, QueryHandle]:
        try:
            self.bound = resolve_requests(self.device, self.vehicle)
            self.layout = DisplayLayout.for_requests(self.bound)
            columns = ["timestamp", *(request.label for request in self.bound)]
            self.logger = TelemetryLogger.open(
                columns,
                self._log_path,
                directory=self._log_dir,
                now=self._now,
            )
        except ObdlogError:
            self.state = LoopState.FATAL
            raise
        self.state = LoopState.SAMPLING
        return self.bound

    def run_tick(self) -> list[Sample]:
        if self.state is not LoopState.SAMPLING or self.logger is None:
            raise RuntimeError(f"Cannot sample in state {self.state.value}")

        samples = [sample_query(request, handle) for request, handle in self.bound.items()]
        if self._display is not None:
            self._display([self.layout.render(s) for s in samples])
        try:
            self.logger.write_row([s.value for s in samples])
        except FileUnavailableError:
            self.state = LoopState.FATAL
            raise
        return samples

    def run(self, stop: threading.Event | None = None) -> None:
        """Sample until `stop` is set. Checked once per tick."""
        stop = stop or threading.Event()
        try:
            if self.state is LoopState.RESOLVING:
                self.resolve()
            while not stop.is_set():
                self.run_tick()
                if stop.wait(self.interval_s):
                    break
        except ObdlogError as exc:
            self.error = exc
            raise
        finally:
            self.close()

    def close(self) -> None:
        if self.logger is not None:
            self.logger.close()
        if self.state is LoopState.SAMPLING:
            self.state = LoopState.STOPPED
