"""Trouble-code retrieval fanned out across modules."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from obdlog.core.model import ModuleTroubleCodes
from obdlog.devices.base import Device

DEFAULT_MODULES = (0x7E0, 0x7E1)
LOGGER = logging.getLogger(__name__)


def collect_trouble_codes(device: Device, modules: Sequence[int]) -> list[ModuleTroubleCodes]:
    """Fetch codes from every module concurrently; results keep module order.

    A failing module is reported through `ModuleTroubleCodes.error` and does not
    affect the others.
    """
    if not modules:
        return []

    results: list[ModuleTroubleCodes] = []
    with ThreadPoolExecutor(max_workers=len(modules)) as executor:
        futures = [executor.submit(device.fetch_trouble_codes, module) for module in modules]
        for module, future in zip(modules, futures):
            try:
                codes = tuple(future.result())
            except Exception as exc:
                LOGGER.error("Reading DTCs from module %03X failed: %s", module, exc)
                results.append(ModuleTroubleCodes(module=module, codes=(), error=str(exc)))
                continue
            results.append(ModuleTroubleCodes(module=module, codes=codes))
    return results


def clear_trouble_codes(device: Device, modules: Sequence[int]) -> list[ModuleTroubleCodes]:
    results: list[ModuleTroubleCodes] = []
    for module in modules:
        try:
            device.clear_trouble_codes(module)
        except Exception as exc:
            LOGGER.error("Clearing DTCs on module %03X failed: %s", module, exc)
            results.append(ModuleTroubleCodes(module=module, codes=(), error=str(exc)))
            continue
        results.append(ModuleTroubleCodes(module=module, codes=()))
    return results
