"""Utilities for loading entity rows (id + location text) from CSV or JSONL."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

import orjson
import structlog
from pydantic import ValidationError

from havenmap.geo.models import EntityRecord

LOGGER = structlog.get_logger(__name__)

_LOCATION_KEYS = ("location_text", "location_name", "location")
_RESERVED = {"id", "metadata", *_LOCATION_KEYS}


def _prepare_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        mapped[str(key).strip()] = value.strip() if isinstance(value, str) else value
    location = next((mapped[key] for key in _LOCATION_KEYS if mapped.get(key) not in (None, "")), None)
    metadata = dict(mapped.get("metadata") or {}) if isinstance(mapped.get("metadata"), dict) else {}
    for key, value in mapped.items():
        if key not in _RESERVED and value not in (None, ""):
            metadata[key] = value
    return {"id": mapped.get("id"), "location_text": location, "metadata": metadata}


def coerce_entity(row: Mapping[str, Any] | EntityRecord) -> EntityRecord:
    """Build an ``EntityRecord`` from a loose mapping; raises ``ValueError``."""
    if isinstance(row, EntityRecord):
        return row
    prepared = _prepare_row(row)
    try:
        return EntityRecord.model_validate(prepared)
    except ValidationError as exc:
        raise ValueError(f"Invalid entity row {prepared.get('id')!r}: {exc}") from exc


def _iter_csv(path: Path) -> Iterator[Tuple[int, Dict[str, Any]]]:
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        for line_no, raw in enumerate(reader, start=2):
            if raw:
                yield line_no, raw


def _iter_jsonl(path: Path) -> Iterator[Tuple[int, Dict[str, Any]]]:
    with path.open("rb") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                payload = orjson.loads(line)
            except orjson.JSONDecodeError:
                LOGGER.warning("entity_row_unparseable", path=str(path), line=line_no)
                continue
            if isinstance(payload, dict):
                yield line_no, payload


def iter_valid(rows: Iterable[Tuple[int, Mapping[str, Any]]], *, source: str) -> Iterator[EntityRecord]:
    for line_no, raw in rows:
        try:
            yield coerce_entity(raw)
        except ValueError as exc:
            LOGGER.warning("entity_row_skipped", source=source, line=line_no, reason=str(exc))


def load_entities(path: Path) -> List[EntityRecord]:
    """Load entities from ``.csv`` or ``.jsonl``/``.ndjson``, skipping invalid rows."""
    suffix = path.suffix.lower()
    if suffix == ".csv":
        rows = _iter_csv(path)
    elif suffix in {".jsonl", ".ndjson"}:
        rows = _iter_jsonl(path)
    else:
        raise ValueError(f"Unsupported entity file type: {path.suffix or path.name}")
    entities = list(iter_valid(rows, source=str(path)))
    LOGGER.info("entities_loaded", path=str(path), count=len(entities))
    return entities
