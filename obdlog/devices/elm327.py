"""ELM327 device implementation on top of python-OBD."""

from __future__ import annotations

import logging
import math
import threading

import obd
from obd import OBDCommand
from obd.protocols import ECU

from obdlog.core.errors import DeviceUnavailableError
from obdlog.core.formula import evaluate_or_nan
from obdlog.core.model import CLEAR_DTC_SERVICE, CURRENT_DATA_SERVICE, TroubleCode

LOGGER = logging.getLogger(__name__)

# Services whose requests carry no PID byte.
_NO_PID_SERVICES = frozenset({0x03, 0x04, 0x07, 0x0A})


def _header(module_address: int) -> bytes:
    return f"{module_address:03X}".encode("ascii")


def _pid_width(service: int, pid: int) -> int:
    if service in _NO_PID_SERVICES:
        return 0
    if pid > 0xFF or service == 0x22:
        return 2
    return 1


def _raw_decoder(echo_len: int):
    def decode(messages) -> bytes:
        if not messages:
            return b""
        return bytes(messages[0].data[echo_len:])

    return decode


def build_command(module_address: int, service: int, pid: int) -> OBDCommand:
    width = _pid_width(service, pid)
    request = f"{service:02X}" + (f"{pid:0{width * 2}X}" if width else "")
    name = f"OBDLOG_{module_address:X}_{service:02X}_{pid:X}"
    return OBDCommand(
        name,
        f"Raw query {module_address:X}:{service:X}:{pid:X}",
        request.encode("ascii"),
        0,
        _raw_decoder(1 + width),
        ECU.ALL,
        False,
        header=_header(module_address),
    )


class WatchedQuery:
    """Handle to a command refreshed by the python-OBD watch thread."""

    def __init__(self, connection: obd.Async, command: OBDCommand, formula: str) -> None:
        self._connection = connection
        self._command = command
        self.formula = formula

    def current_raw_bytes(self) -> bytes:
        response = self._connection.query(self._command)
        if response.is_null() or response.value is None:
            return b""
        return bytes(response.value)

    def current_value(self) -> float:
        if not self.formula:
            return math.nan
        return evaluate_or_nan(self.formula, self.current_raw_bytes())


class ELM327Device:
    def __init__(
        self,
        port: str | None = None,
        *,
        baudrate: int | None = None,
        timeout_s: float = 5.0,
        connection: obd.Async | None = None,
    ) -> None:
        self._lock = threading.Lock()
        if connection is None:
            try:
                connection = obd.Async(portstr=port, baudrate=baudrate, fast=False, timeout=timeout_s)
            except Exception as exc:
                raise DeviceUnavailableError(f"Could not open OBD adapter on {port or '<auto>'}: {exc}") from exc
        self._connection = connection

        if not self._connection.is_connected():
            status = self._connection.status()
            self._connection.close()
            raise DeviceUnavailableError(
                f"OBD adapter on {port or '<auto>'} is not connected to a vehicle (status: {status})"
            )
        LOGGER.info("Connected to %s via %s", self._connection.port_name(), self._connection.protocol_name())

    def discover_supported_parameters(self, module_address: int) -> set[int]:
        with self._lock:
            if not self._connection.is_connected():
                raise DeviceUnavailableError("OBD adapter disconnected during capability discovery")
            supported = {
                int(cmd.pid)
                for cmd in self._connection.supported_commands
                if cmd.mode == CURRENT_DATA_SERVICE and cmd.pid is not None
            }
        LOGGER.debug("Module %03X supports %d current-data PIDs", module_address, len(supported))
        return supported

    def bind_live_query(
        self,
        module_address: int,
        service: int,
        pid: int,
        *,
        formula: str = "",
    ) -> WatchedQuery:
        command = build_command(module_address, service, pid)
        with self._lock:
            with self._connection.paused():
                self._connection.watch(command, force=True)
            if not self._connection.running:
                self._connection.start()
        return WatchedQuery(self._connection, command, formula)

    def _blocking_query(self, command: OBDCommand):
        with self._lock:
            # Async.query only serves watched commands from its cache.
            with self._connection.paused():
                return obd.OBD.query(self._connection, command, force=True)

    def fetch_trouble_codes(self, module_address: int) -> list[TroubleCode]:
        command = OBDCommand(
            f"GET_DTC_{module_address:X}",
            "Get stored DTCs",
            b"03",
            0,
            obd.decoders.dtc,
            ECU.ALL,
            False,
            header=_header(module_address),
        )
        response = self._blocking_query(command)
        if response.is_null() or not response.value:
            return []
        return [TroubleCode(code=code, description=desc or "") for code, desc in response.value]

    def clear_trouble_codes(self, module_address: int) -> None:
        command = OBDCommand(
            f"CLEAR_DTC_{module_address:X}",
            "Clear DTCs and freeze data",
            f"{CLEAR_DTC_SERVICE:02X}".encode("ascii"),
            0,
            obd.decoders.drop,
            ECU.ALL,
            False,
            header=_header(module_address),
        )
        self._blocking_query(command)

    def close(self) -> None:
        self._connection.close()
