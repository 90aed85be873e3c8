from __future__ import annotations

import math
import threading
from datetime import datetime
from pathlib import Path

import pytest

from fakes import FakeDevice, FakeHandle
from obdlog.core.errors import DeviceUnavailableError, FileUnavailableError
from obdlog.core.model import RequestDefinition
from obdlog.core.polling import NO_RESPONSE, DisplayLayout, LoopState, PollingLoop, format_raw
from obdlog.core.telemetry import TelemetryLogger
from obdlog.core.vehicle import Vehicle

NOON = datetime(2024, 5, 1, 12, 0, 0)


def _loop(device: FakeDevice, vehicle: Vehicle, tmp_path: Path, **kwargs) -> PollingLoop:
    return PollingLoop(device, vehicle, log_path=tmp_path / "log.csv", now=lambda: NOON, **kwargs)


def _lines(tmp_path: Path) -> list[str]:
    return (tmp_path / "log.csv").read_text(encoding="utf-8").splitlines()


def test_two_formula_requests_produce_one_row(tmp_path: Path) -> None:
    vehicle = Vehicle("Subaru", "Impreza")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM", formula="(A*256+B)/4", unit="rpm"))
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0D, name="Speed", formula="A", unit="km/h"))
    device = FakeDevice(
        supported={0x0C, 0x0D},
        handles={
            (0x7E0, 0x01, 0x0C): FakeHandle(raw=b"\x1a\xf8", value=1726.0),
            (0x7E0, 0x01, 0x0D): FakeHandle(raw=b"\x2a", value=42.0),
        },
    )
    screens: list[list[str]] = []
    loop = _loop(device, vehicle, tmp_path, display=lambda lines: screens.append(list(lines)))

    loop.resolve()
    samples = loop.run_tick()
    loop.close()

    assert [s.value for s in samples] == [1726.0, 42.0]
    assert _lines(tmp_path) == ['"timestamp","RPM","Speed"', "12:00:00,1726.0,42.0"]
    assert screens == [["RPM:   1726rpm", "Speed: 42km/h"]]
    assert loop.state is LoopState.STOPPED


def test_no_response_renders_and_logs_nan(tmp_path: Path) -> None:
    vehicle = Vehicle("Test", "Car")
    raw_only = RequestDefinition(ecu=0x7E0, service=0x01, pid=0x05, name="Raw")
    with_formula = RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM", formula="A")
    vehicle.add_request(raw_only)
    vehicle.add_request(with_formula)
    device = FakeDevice(supported={0x05, 0x0C})
    loop = _loop(device, vehicle, tmp_path)

    loop.resolve()
    samples = loop.run_tick()

    assert [s.text for s in samples] == [NO_RESPONSE, NO_RESPONSE]
    assert all(math.isnan(s.value) for s in samples)
    assert _lines(tmp_path)[1] == "12:00:00,nan,nan"


def test_raw_bytes_render_as_hex_and_log_nan(tmp_path: Path) -> None:
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x09, pid=0x02, name="VIN"))
    device = FakeDevice(handles={(0x7E0, 0x09, 0x02): FakeHandle(raw=b"\x01\x0a\xff")})
    loop = _loop(device, vehicle, tmp_path)

    loop.resolve()
    (sample,) = loop.run_tick()

    assert sample.text == "01 0a ff"
    assert math.isnan(sample.value)
    assert format_raw(b"") == NO_RESPONSE


def test_read_failure_is_isolated_to_one_query(tmp_path: Path) -> None:
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E1, service=0x01, pid=0x05, name="Broken", formula="A"))
    vehicle.add_request(RequestDefinition(ecu=0x7E1, service=0x01, pid=0x06, name="Fine", formula="A"))
    device = FakeDevice(
        handles={
            (0x7E1, 0x01, 0x05): FakeHandle(error=OSError("bus error")),
            (0x7E1, 0x01, 0x06): FakeHandle(raw=b"\x07", value=7.0),
        }
    )
    loop = _loop(device, vehicle, tmp_path)

    loop.resolve()
    broken, fine = loop.run_tick()

    assert broken.text == NO_RESPONSE
    assert fine.text == "7"
    assert _lines(tmp_path)[1] == "12:00:00,nan,7.0"


def test_discovery_failure_is_fatal_before_sampling(tmp_path: Path) -> None:
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C))
    loop = _loop(FakeDevice(discovery_error=DeviceUnavailableError("no adapter")), vehicle, tmp_path)

    with pytest.raises(DeviceUnavailableError):
        loop.run()

    assert loop.state is LoopState.FATAL
    assert not (tmp_path / "log.csv").exists()
    with pytest.raises(RuntimeError):
        loop.run_tick()


def test_run_stops_at_tick_boundary(tmp_path: Path) -> None:
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM", formula="A"))
    device = FakeDevice(supported={0x0C}, handles={(0x7E0, 0x01, 0x0C): FakeHandle(raw=b"\x01", value=1.0)})
    stop = threading.Event()
    ticks: list[int] = []

    def display(lines) -> None:
        ticks.append(len(lines))
        if len(ticks) == 3:
            stop.set()

    loop = _loop(device, vehicle, tmp_path, display=display, interval_s=0.0)
    loop.run(stop)

    assert ticks == [1, 1, 1]
    assert len(_lines(tmp_path)) == 4
    assert loop.logger is not None and loop.logger.closed


def test_layout_width_covers_longest_label() -> None:
    requests = [
        RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM"),
        RequestDefinition(ecu=0x7E0, service=0x01, pid=0x05),
    ]
    layout = DisplayLayout.for_requests(requests)
    assert layout.label_width == len("7e0:1:5: ")


def test_log_write_failure_is_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM", formula="A"))
    device = FakeDevice(supported={0x0C}, handles={(0x7E0, 0x01, 0x0C): FakeHandle(raw=b"\x01", value=1.0)})

    def disk_full(self, values) -> None:
        raise FileUnavailableError("Cannot write telemetry log: No space left on device")

    monkeypatch.setattr(TelemetryLogger, "write_row", disk_full)
    loop = _loop(device, vehicle, tmp_path, interval_s=0.0)

    with pytest.raises(FileUnavailableError):
        loop.run(threading.Event())

    assert loop.state is LoopState.FATAL
    assert isinstance(loop.error, FileUnavailableError)
    assert loop.logger is not None and loop.logger.closed


def test_existing_log_path_is_fatal_before_sampling(tmp_path: Path) -> None:
    (tmp_path / "log.csv").write_text("keep me\n", encoding="utf-8")
    vehicle = Vehicle("Test", "Car")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM"))
    loop = _loop(FakeDevice(supported={0x0C}), vehicle, tmp_path)

    with pytest.raises(FileUnavailableError):
        loop.resolve()

    assert loop.state is LoopState.FATAL
    assert _lines(tmp_path) == ["keep me"]
