"""Static place-name lookup table for the Surf Coast / Geelong region."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import structlog
import yaml

from havenmap.geo.models import Coordinate, GazetteerEntry, normalise_query

LOGGER = structlog.get_logger(__name__)

# Order matters: lookups return the first partial match.
_BUILTIN_PLACES: Tuple[Tuple[str, float, float], ...] = (
    ("Torquay", -38.3305, 144.3256),
    ("Geelong", -38.1499, 144.3580),
    ("Surf Coast", -38.3000, 144.2500),
    ("Bellarine Peninsula", -38.2500, 144.5000),
    ("Ocean Grove", -38.2575, 144.5208),
    ("Barwon Heads", -38.2683, 144.4958),
    ("Anglesea", -38.4089, 144.1856),
    ("Lorne", -38.5433, 143.9781),
    ("Winchelsea", -38.2475, 143.9856),
    ("Colac", -38.3422, 143.5856),
    ("Portarlington", -38.0833, 144.6550),
    ("Queenscliff", -38.2650, 144.6658),
    ("Point Lonsdale", -38.2917, 144.6161),
    ("Drysdale", -38.1689, 144.5775),
    ("Leopold", -38.1856, 144.4489),
    ("Melbourne", -37.8136, 144.9631),
)


class Gazetteer:
    """Ordered, immutable collection of known places."""

    def __init__(self, entries: Iterable[GazetteerEntry]) -> None:
        self._entries: Tuple[GazetteerEntry, ...] = tuple(entries)
        self._keys: Tuple[str, ...] = tuple(normalise_query(entry.name) for entry in self._entries)

    @classmethod
    def default(cls) -> "Gazetteer":
        return cls(
            GazetteerEntry(name=name, coordinate=Coordinate(lat=lat, lng=lng))
            for name, lat, lng in _BUILTIN_PLACES
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[GazetteerEntry]:
        return iter(self._entries)

    def get(self, name: str) -> Optional[Coordinate]:
        """Return the coordinate for an exact (case-insensitive) name."""
        key = normalise_query(name)
        for entry_key, entry in zip(self._keys, self._entries):
            if entry_key == key:
                return entry.coordinate
        return None

    def lookup(self, query: str) -> Optional[GazetteerEntry]:
        """Find the first entry whose name contains, or is contained in, the query.

        Matching is case-insensitive and walks the entries in declaration order,
        so ties are broken by position in the table rather than by match length.
        """
        key = normalise_query(query)
        if not key:
            return None
        for entry_key, entry in zip(self._keys, self._entries):
            if entry_key in key or key in entry_key:
                return entry
        return None


def load_gazetteer(path: Optional[Path]) -> Gazetteer:
    """Load a gazetteer from YAML, falling back to the built-in table.

    The file holds a ``places`` list; list order is the match order::

        places:
          - {name: Torquay, lat: -38.3305, lng: 144.3256}
    """
    if path is None or not path.exists():
        return Gazetteer.default()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    places = data.get("places")
    if not isinstance(places, list):
        raise ValueError(f"{path}: expected a 'places' list")
    entries: List[GazetteerEntry] = []
    for idx, item in enumerate(places):
        if not isinstance(item, dict) or not item.get("name"):
            raise ValueError(f"{path}: place #{idx} needs a name")
        try:
            coordinate = Coordinate(lat=float(item["lat"]), lng=float(item["lng"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"{path}: place {item['name']!r} has invalid coordinates") from exc
        entries.append(GazetteerEntry(name=str(item["name"]), coordinate=coordinate))
    LOGGER.info("gazetteer_loaded", path=str(path), places=len(entries))
    return Gazetteer(entries)
