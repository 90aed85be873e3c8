"""Vehicle definitions and their declarative YAML/JSON file format."""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any

import yaml

from obdlog.core.errors import FileUnavailableError, MalformedDefinitionError, NotFoundError
from obdlog.core.model import RequestDefinition, parse_uuid
from obdlog.core.schema import validate_record

_VEHICLE_SUFFIXES = (".yaml", ".yml", ".json")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Labels such as "on" or "no" must stay strings.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _unique_mapping(pairs: Iterable[tuple[Any, Any]]) -> dict[Any, Any]:
    mapping: dict[Any, Any] = {}
    for key, value in pairs:
        if key in mapping:
            raise MalformedDefinitionError(f"Duplicate key '{key}' in vehicle definition")
        mapping[key] = value
    return mapping


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[Any, Any]:
    return _unique_mapping(
        (loader.construct_object(key_node, deep=deep), loader.construct_object(value_node, deep=deep))
        for key_node, value_node in node.value
    )


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


class RequestsView(Sequence[RequestDefinition]):
    """Read-only, restartable view over a vehicle's live request list."""

    def __init__(self, backing: list[RequestDefinition]) -> None:
        self._backing = backing

    def __getitem__(self, index):  # type: ignore[override]
        return self._backing[index]

    def __len__(self) -> int:
        return len(self._backing)

    def __iter__(self) -> Iterator[RequestDefinition]:
        return iter(self._backing)

    def __repr__(self) -> str:
        return f"RequestsView({self._backing!r})"


class Vehicle:
    """Make/model metadata plus the ordered requests polled for that vehicle.

    Equality is by identity. Callers must not add two requests sharing an
    identity; `add_request` does not check.
    """

    def __init__(
        self,
        make: str = "",
        model: str = "",
        *,
        id: uuid.UUID | None = None,
        requests: Sequence[RequestDefinition] = (),
    ) -> None:
        self.id = id or uuid.uuid4()
        self.make = make
        self.model = model
        self._requests: list[RequestDefinition] = list(requests)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vehicle):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Vehicle(id={self.id}, make={self.make!r}, model={self.model!r}, requests={len(self._requests)})"

    def add_request(self, request: RequestDefinition) -> None:
        self._requests.append(request)

    def remove_request(self, request: RequestDefinition) -> None:
        for index, candidate in enumerate(self._requests):
            if candidate.id == request.id:
                del self._requests[index]
                return

    def get_request(self, request_id: uuid.UUID) -> RequestDefinition:
        for request in self._requests:
            if request.id == request_id:
                return request
        raise NotFoundError(f"Request {request_id} not found in vehicle {self.id}")

    def requests(self) -> RequestsView:
        return RequestsView(self._requests)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "make": self.make,
            "model": self.model,
            "requests": [r.to_record() for r in self._requests],
        }

    @classmethod
    def from_record(cls, record: Any, *, source: object = None) -> Vehicle:
        validate_record(record, source=source)
        return cls(
            record["make"],
            record["model"],
            id=parse_uuid(record["id"], context="id"),
            requests=[
                RequestDefinition.from_record(r, source=source) for r in record["requests"]
            ],
        )

    @classmethod
    def load(cls, path: str | Path) -> Vehicle:
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise FileUnavailableError(f"Could not read vehicle definition {path}: {exc}") from exc

        if path.suffix.lower() == ".json":
            try:
                loaded = json.loads(content, object_pairs_hook=_unique_mapping)
            except json.JSONDecodeError as exc:
                raise MalformedDefinitionError(f"Invalid vehicle definition {path}: {exc}") from exc
        else:
            try:
                loaded = yaml.load(content, Loader=UniqueKeyLoader)
            except yaml.YAMLError as exc:
                raise MalformedDefinitionError(f"Invalid vehicle definition {path}: {exc}") from exc

        if not isinstance(loaded, dict):
            raise MalformedDefinitionError(f"Vehicle definition {path} must contain a mapping at root")

        vehicle = cls.from_record(loaded, source=path)
        LOGGER.debug("Loaded vehicle %s with %d requests from %s", vehicle.id, len(vehicle._requests), path)
        return vehicle

    def save(self, path: str | Path) -> None:
        path = Path(path)
        record = self.to_record()
        if path.suffix.lower() in {".yaml", ".yml"}:
            # Escaped output keeps NEL and line separators inside string values.
            text = yaml.safe_dump(record, sort_keys=False, allow_unicode=False)
        else:
            text = json.dumps(record, indent=4) + "\n"
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise FileUnavailableError(f"Could not write vehicle definition {path}: {exc}") from exc


def _vehicle_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "obdlog/vehicles", xdg_data / "obdlog/vehicles"


def find_vehicle_file(name: str | Path) -> Path:
    """Resolve a vehicle argument to a file.

    An existing path wins; otherwise `name` is looked up in the user vehicle
    directories with each known suffix.
    """
    candidate = Path(name)
    if candidate.is_file():
        return candidate

    for directory in _vehicle_dirs():
        for suffix in ("",) + _VEHICLE_SUFFIXES:
            path = directory / f"{name}{suffix}"
            if path.is_file():
                return path

    raise FileUnavailableError(f"Vehicle definition '{name}' not found")
