"""Device interfaces."""

from __future__ import annotations

from typing import Protocol

from obdlog.core.model import TroubleCode


class QueryHandle(Protocol):
    def current_raw_bytes(self) -> bytes:
        """Return the latest response payload, or b"" if nothing was received."""

    def current_value(self) -> float:
        """Return the latest formula value, or NaN when unavailable."""


class Device(Protocol):
    def discover_supported_parameters(self, module_address: int) -> set[int]:
        """Return the current-data PIDs the module answers. Blocks on device I/O."""

    def bind_live_query(
        self,
        module_address: int,
        service: int,
        pid: int,
        *,
        formula: str = "",
    ) -> QueryHandle:
        """Register a continuously refreshed query and return its handle."""

    def fetch_trouble_codes(self, module_address: int) -> list[TroubleCode]:
        """Read stored trouble codes from one module. Blocks on device I/O."""

    def clear_trouble_codes(self, module_address: int) -> None:
        """Clear stored trouble codes on one module."""

    def close(self) -> None:
        """Release the connection."""
