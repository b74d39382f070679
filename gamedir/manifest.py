"""Loading and validation of the declarative game list."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Sequence, Set, Tuple, Union

import yaml

from .errors import ManifestInvalid
from .models import GameSpec

ManifestSource = Union[bytes, str, Path]

REQUIRED_FIELDS = ("name", "repo_url", "build_command")

# Names double as URL path segments and directory names under the public root.
_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")
_RESERVED_NAMES = {"static", "index.html"}


def load_manifest(source: ManifestSource) -> Tuple[GameSpec, ...]:
    """Parse and validate a manifest, preserving entry order.

    ``source`` may be a path to a JSON/YAML file, or the raw document as bytes
    or text. Any problem raises :class:`ManifestInvalid`; no partial result
    is ever returned.
    """
    document = _parse(source)
    records = _records(document)

    specs: List[GameSpec] = []
    seen: Set[str] = set()
    for position, record in enumerate(records):
        spec = _spec_from_record(record, position)
        folded = spec.name.lower()
        if folded in seen:
            raise ManifestInvalid(f"Duplicate game name '{spec.name}' at entry {position}")
        seen.add(folded)
        specs.append(spec)
    return tuple(specs)


def is_safe_name(name: str) -> bool:
    return bool(_SAFE_NAME.match(name)) and name.lower() not in _RESERVED_NAMES


def _parse(source: ManifestSource) -> Any:
    if isinstance(source, Path):
        try:
            raw = source.read_bytes()
        except OSError as exc:
            raise ManifestInvalid(f"Unable to read manifest {source}: {exc}") from exc
        prefer_yaml = source.suffix.lower() in {".yml", ".yaml"}
    else:
        raw = source.encode("utf-8") if isinstance(source, str) else source
        prefer_yaml = False

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ManifestInvalid(f"Manifest is not valid UTF-8: {exc}") from exc
    if not text.strip():
        raise ManifestInvalid("Manifest is empty")

    if not prefer_yaml:
        try:
            return json.loads(text)
        except json.JSONDecodeError as json_exc:
            if text.lstrip().startswith(("[", "{")):
                raise ManifestInvalid(f"Manifest is not valid JSON: {json_exc}") from json_exc
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestInvalid(f"Manifest could not be parsed: {exc}") from exc


def _records(document: Any) -> Sequence[Any]:
    if isinstance(document, dict) and "games" in document:
        document = document["games"]
    if not isinstance(document, list):
        raise ManifestInvalid("Manifest must be a list of game records")
    return document


def _spec_from_record(record: Any, position: int) -> GameSpec:
    if not isinstance(record, dict):
        raise ManifestInvalid(f"Entry {position} must be a mapping")

    missing = [key for key in REQUIRED_FIELDS if not _non_blank(record.get(key))]
    if missing:
        label = record.get("name") if isinstance(record.get("name"), str) else f"entry {position}"
        raise ManifestInvalid(f"{label}: missing required field(s) {', '.join(missing)}")

    name = record["name"].strip()
    if not is_safe_name(name):
        raise ManifestInvalid(
            f"Game name '{name}' is not a safe path segment "
            "(letters, digits, '.', '_', '-'; must not start with a separator or be reserved)"
        )

    description = record.get("description")
    if description is None:
        description = ""
    elif not isinstance(description, str):
        raise ManifestInvalid(f"{name}: description must be a string")

    return GameSpec(
        name=name,
        source_url=record["repo_url"].strip(),
        build_command=record["build_command"],
        description=description.strip(),
        tags=_tags(record.get("tags"), name),
    )


def _tags(value: Any, name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise ManifestInvalid(f"{name}: tags must be a list of strings")
    return tuple(tag.strip() for tag in value if tag.strip())


def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def describe_manifest(specs: Sequence[GameSpec]) -> Dict[str, Any]:
    """Return a JSON-friendly view of loaded specs (used by the service)."""
    return {
        "games": [
            {
                "name": spec.name,
                "repo_url": spec.source_url,
                "description": spec.description,
                "tags": list(spec.tags),
            }
            for spec in specs
        ]
    }


__all__ = ["REQUIRED_FIELDS", "describe_manifest", "is_safe_name", "load_manifest"]
