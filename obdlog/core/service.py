"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from obdlog.core import diagnostics
from obdlog.core.errors import FileUnavailableError, MalformedDefinitionError
from obdlog.core.model import ModuleTroubleCodes, RequestDefinition
from obdlog.core.polling import PollingLoop
from obdlog.core.resolver import discover
from obdlog.core.settings import Settings, load_settings
from obdlog.core.vehicle import Vehicle, find_vehicle_file
from obdlog.devices.base import Device
from obdlog.devices.elm327 import ELM327Device

ADDRESS_SEPARATOR = ":"
LOGGER = logging.getLogger(__name__)


def parse_address(text: str) -> tuple[int, int, int]:
    """Parse `ECU:SERVICE:PID` in hex, e.g. `7E0:01:0C`."""
    parts = text.split(ADDRESS_SEPARATOR)
    if len(parts) != 3:
        raise MalformedDefinitionError(f"Request address '{text}' must look like ECU:SERVICE:PID")
    try:
        ecu, service, pid = (int(p, 16) for p in parts)
    except ValueError as exc:
        raise MalformedDefinitionError(f"Request address '{text}' must be hexadecimal") from exc
    return ecu, service, pid


def parse_module(text: str) -> int:
    try:
        return int(text, 16)
    except ValueError as exc:
        raise MalformedDefinitionError(f"Module address '{text}' must be hexadecimal") from exc


class ObdService:
    def __init__(
        self,
        *,
        device: Device | None = None,
        settings: Settings | None = None,
        port: str | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self._device = device
        self._port = port or self.settings.port

    @property
    def device(self) -> Device:
        if self._device is None:
            self._device = ELM327Device(self._port)
        return self._device

    def close(self) -> None:
        if self._device is not None:
            self._device.close()
            self._device = None

    def load_vehicle(self, name: str | Path) -> Vehicle:
        return Vehicle.load(find_vehicle_file(name))

    def create_vehicle(self, path: str | Path, make: str, model: str, *, overwrite: bool = False) -> Vehicle:
        path = Path(path)
        if path.exists() and not overwrite:
            raise FileUnavailableError(f"{path} already exists")
        vehicle = Vehicle(make, model)
        vehicle.save(path)
        return vehicle

    def add_request(self, path: str | Path, address: str, **fields: str) -> RequestDefinition:
        ecu, service, pid = parse_address(address)
        vehicle = Vehicle.load(path)
        request = RequestDefinition(ecu=ecu, service=service, pid=pid, **fields)
        vehicle.add_request(request)
        vehicle.save(path)
        LOGGER.info("Added request %s (%s) to %s", request.id, request.label, path)
        return request

    def supported_parameters(self, modules: Sequence[int]) -> dict[int, set[int]]:
        return {module: discover(self.device, module) for module in modules}

    def trouble_codes(self, modules: Sequence[int]) -> list[ModuleTroubleCodes]:
        return diagnostics.collect_trouble_codes(self.device, modules)

    def clear_trouble_codes(self, modules: Sequence[int]) -> list[ModuleTroubleCodes]:
        return diagnostics.clear_trouble_codes(self.device, modules)

    def polling_loop(
        self,
        vehicle: Vehicle,
        *,
        refresh_ms: int | None = None,
        display: Callable[[Sequence[str]], None] | None = None,
        log_path: str | Path | None = None,
    ) -> PollingLoop:
        interval_s = (refresh_ms / 1000.0) if refresh_ms else self.settings.interval_s
        return PollingLoop(
            self.device,
            vehicle,
            interval_s=interval_s,
            display=display,
            log_path=log_path,
            log_dir=self.settings.log_dir,
        )
