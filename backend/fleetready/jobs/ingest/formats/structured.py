"""JSON and YAML vendor payloads."""

import json
from typing import Any, Optional

import yaml

from fleetready.core.errors import FormatError

COLLECTION_KEYS = ("records", "events", "items", "data", "maintenance")


def _load(text: str, kind: str) -> Any:
    try:
        if kind == "json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise FormatError(f"Malformed {kind.upper()}: {e}")


def _dump(item: Any, kind: str) -> str:
    if kind == "json":
        return json.dumps(item, sort_keys=True, default=str, ensure_ascii=False)
    return yaml.safe_dump(item, sort_keys=True, allow_unicode=True)


def _dig(doc: Any, records_path: str) -> Any:
    for part in records_path.split("."):
        if not isinstance(doc, dict) or part not in doc:
            raise FormatError(f"records_path {records_path!r} not found in payload")
        doc = doc[part]
    return doc


def split_records(text: str, *, kind: str, records_path: Optional[str] = None) -> list[str]:
    if not text.strip():
        return []
    doc = _load(text, kind)
    if records_path:
        doc = _dig(doc, records_path)

    if isinstance(doc, dict):
        for key in COLLECTION_KEYS:
            if isinstance(doc.get(key), list):
                doc = doc[key]
                break

    items = doc if isinstance(doc, list) else [doc]
    return [_dump(item, kind) for item in items if item is not None]


def parse_record(payload: str, *, kind: str) -> dict[str, Any]:
    doc = _load(payload, kind)
    if not isinstance(doc, dict):
        raise FormatError(f"{kind.upper()} record must be a mapping, got {type(doc).__name__}")
    return doc
