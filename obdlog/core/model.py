"""Core data models used across loader, resolver, polling loop and CLI."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from obdlog.core.errors import MalformedDefinitionError
from obdlog.core.schema import validate_record

PRIMARY_MODULE = 0x7E0
CURRENT_DATA_SERVICE = 0x01
CLEAR_DTC_SERVICE = 0x04


def parse_uuid(value: Any, *, context: str) -> uuid.UUID:
    if not isinstance(value, str):
        raise MalformedDefinitionError(f"{context} must be a UUID string")
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise MalformedDefinitionError(f"{context} is not a valid UUID: '{value}'") from exc


@dataclass(frozen=True, eq=False)
class RequestDefinition:
    """One diagnostic query: module address, service, PID and value conversion.

    Two definitions are equal when their identities match; the remaining fields
    take no part in equality or hashing.
    """

    ecu: int
    service: int
    pid: int
    name: str = ""
    description: str = ""
    category: str = ""
    formula: str = ""
    unit: str = ""
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestDefinition):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        return f"{self.ecu:x}:{self.service:x}:{self.pid:x}"

    def to_record(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "ecu": self.ecu,
            "service": self.service,
            "pid": self.pid,
            "formula": self.formula,
            "unit": self.unit,
        }

    @classmethod
    def from_record(cls, record: Any, *, source: object = None) -> RequestDefinition:
        validate_record(record, definition="request", source=source)
        return cls(
            id=parse_uuid(record["id"], context="request.id"),
            name=record["name"],
            description=record["description"],
            category=record["category"],
            ecu=int(record["ecu"]),
            service=int(record["service"]),
            pid=int(record["pid"]),
            formula=record["formula"],
            unit=record["unit"],
        )


@dataclass(frozen=True)
class TroubleCode:
    code: str
    description: str = ""


@dataclass(frozen=True)
class ModuleTroubleCodes:
    module: int
    codes: tuple[TroubleCode, ...]
    error: str | None = None


@dataclass(frozen=True)
class Sample:
    """Rendered and logged outcome of one bound query for one tick."""

    request: RequestDefinition
    text: str
    value: float
