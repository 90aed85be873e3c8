"""JSON-schema validation for vehicle definition records."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import ValidationError, validators

from obdlog.core.errors import MalformedDefinitionError


@lru_cache(maxsize=None)
def _load_schema() -> dict[str, Any]:
    schema_text = resources.files("obdlog.schemas").joinpath("vehicle.schema.json").read_text(
        encoding="utf-8"
    )
    return json.loads(schema_text)


@lru_cache(maxsize=None)
def _validator(definition: str | None) -> Any:
    schema = _load_schema()
    if definition is not None:
        schema = {
            "$schema": schema["$schema"],
            "$defs": schema["$defs"],
            "$ref": f"#/$defs/{definition}",
        }
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def validate_record(record: Any, *, definition: str | None = None, source: object = None) -> None:
    """Validate `record` against the vehicle schema, or one of its `$defs`."""
    try:
        _validator(definition).validate(record)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.absolute_path)
        where = f" ({path})" if path else ""
        origin = f" for {source}" if source is not None else ""
        raise MalformedDefinitionError(f"Schema validation failed{origin}{where}: {exc.message}") from exc
