"""Bind vehicle requests to live device queries, skipping unsupported PIDs."""

from __future__ import annotations

import logging

from obdlog.core.errors import DeviceUnavailableError
from obdlog.core.model import CURRENT_DATA_SERVICE, PRIMARY_MODULE, RequestDefinition
from obdlog.core.vehicle import Vehicle
from obdlog.devices.base import Device, QueryHandle

LOGGER = logging.getLogger(__name__)


def is_filtered(request: RequestDefinition, supported: set[int]) -> bool:
    """Current-data requests to the primary module must be in the supported set."""
    return (
        request.ecu == PRIMARY_MODULE
        and request.service == CURRENT_DATA_SERVICE
        and request.pid not in supported
    )


def discover(device: Device, module_address: int = PRIMARY_MODULE) -> set[int]:
    try:
        return set(device.discover_supported_parameters(module_address))
    except DeviceUnavailableError:
        raise
    except Exception as exc:
        raise DeviceUnavailableError(f"Capability discovery failed on module {module_address:03X}: {exc}") from exc


def resolve_requests(device: Device, vehicle: Vehicle) -> dict[RequestDefinition, QueryHandle]:
    """Return a live query per request the device can answer, in vehicle order."""
    supported = discover(device)

    bound: dict[RequestDefinition, QueryHandle] = {}
    for request in vehicle.requests():
        if is_filtered(request, supported):
            LOGGER.info("Skipping %s: PID %02X not supported by module %03X", request.label, request.pid, request.ecu)
            continue
        bound[request] = device.bind_live_query(
            request.ecu,
            request.service,
            request.pid,
            formula=request.formula,
        )
    LOGGER.debug("Bound %d of %d requests", len(bound), len(vehicle.requests()))
    return bound
