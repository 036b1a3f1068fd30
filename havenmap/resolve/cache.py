"""Session cache of resolved place names, optionally warm-started from disk."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator, Optional

import orjson
import structlog

from havenmap.geo.models import Coordinate

LOGGER = structlog.get_logger(__name__)

_CACHE_SCHEMA_VERSION = 1


class ResolutionCache:
    """Maps normalised place names to their resolved base coordinates.

    Entries are never invalidated. Writing the same key twice stores the same
    value, so concurrent writers need no lock. Only base coordinates live here;
    obfuscated positions are always recomputed.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._index: Dict[str, Coordinate] = {}
        if path is not None and path.exists():
            self._load(path)

    def _load(self, path: Path) -> None:
        try:
            payload = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError:
            LOGGER.warning("geocode_cache_corrupt", path=str(path))
            return
        if not isinstance(payload, dict) or payload.get("version") != _CACHE_SCHEMA_VERSION:
            LOGGER.info("geocode_cache_version_mismatch", path=str(path))
            return
        data = payload.get("data", {})
        if not isinstance(data, dict):
            LOGGER.warning("geocode_cache_corrupt", path=str(path))
            return
        for key, pair in data.items():
            if not isinstance(pair, list):
                LOGGER.warning("geocode_cache_entry_skipped", key=key)
                continue
            try:
                self._index[key] = Coordinate(lat=float(pair[0]), lng=float(pair[1]))
            except (TypeError, ValueError, IndexError):
                LOGGER.warning("geocode_cache_entry_skipped", key=key)
        LOGGER.info("geocode_cache_loaded", path=str(path), entries=len(self._index))

    def get(self, key: str) -> Optional[Coordinate]:
        return self._index.get(key)

    def put(self, key: str, coordinate: Coordinate) -> None:
        self._index[key] = coordinate

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def snapshot(self) -> Dict[str, Coordinate]:
        return dict(self._index)

    def save(self, path: Optional[Path] = None) -> Optional[Path]:
        """Persist entries as ``{key: [lat, lng]}``; no-op without a path."""
        target = path or self._path
        if target is None:
            return None
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": _CACHE_SCHEMA_VERSION,
            "data": {key: [coord.lat, coord.lng] for key, coord in self._index.items()},
        }
        target.write_bytes(orjson.dumps(payload))
        return target
