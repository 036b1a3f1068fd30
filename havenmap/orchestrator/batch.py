"""Batch resolution: resolve, obfuscate and filter entities for map rendering."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import orjson
import structlog

from havenmap.geo.models import Coordinate, EntityPosition, EntityRecord, ProximityQuery, RadiusPolygon
from havenmap.geo.proximity import DEFAULT_SEGMENTS, bounding_box, build_radius_polygon, within_radius
from havenmap.observability.metrics import MetricsRegistry, record_duration
from havenmap.observability.tracing import clear_context, set_context
from havenmap.orchestrator.entity_loader import coerce_entity
from havenmap.privacy.jitter import PositionJitter
from havenmap.resolve.resolver import GeocodeResolver

LOGGER = structlog.get_logger(__name__)

EntityInput = Union[EntityRecord, Mapping[str, Any]]


@dataclass
class MapPayload:
    """Points and optional search ring handed to the map renderer."""

    positions: List[EntityPosition]
    polygon: Optional[RadiusPolygon] = None
    bounds: Optional[Tuple[Coordinate, Coordinate]] = None
    skipped: List[str] = field(default_factory=list)

    def to_geojson(self) -> Dict[str, Any]:
        """Render as a GeoJSON FeatureCollection.

        Only obfuscated coordinates are emitted; base coordinates never leave
        this object.
        """
        features: List[Dict[str, Any]] = []
        for position in self.positions:
            properties: Dict[str, Any] = {"id": position.entity_id, **position.metadata}
            if not position.located:
                properties["approximate"] = True
            features.append(
                {
                    "type": "Feature",
                    "id": position.entity_id,
                    "geometry": {"type": "Point", "coordinates": position.jittered.as_lng_lat()},
                    "properties": properties,
                }
            )
        if self.polygon is not None:
            features.append(polygon_feature(self.polygon))
        collection: Dict[str, Any] = {"type": "FeatureCollection", "features": features}
        if self.bounds is not None:
            south_west, north_east = self.bounds
            collection["bbox"] = [south_west.lng, south_west.lat, north_east.lng, north_east.lat]
        return collection

    def dumps(self) -> bytes:
        return orjson.dumps(self.to_geojson(), option=orjson.OPT_INDENT_2)


def polygon_feature(polygon: RadiusPolygon) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [[point.as_lng_lat() for point in polygon]]},
        "properties": {"kind": "search-radius"},
    }


class ResolutionOrchestrator:
    """Fans entity resolution out concurrently and assembles the map payload."""

    def __init__(
        self,
        resolver: GeocodeResolver,
        *,
        jitter: Optional[PositionJitter] = None,
        polygon_segments: int = DEFAULT_SEGMENTS,
        concurrency: Optional[int] = None,
    ) -> None:
        self.resolver = resolver
        self.jitter = jitter or PositionJitter(1.0)
        self._segments = polygon_segments
        self._concurrency = concurrency

    @property
    def metrics(self) -> MetricsRegistry:
        return self.resolver.metrics

    async def _position(self, entity: EntityRecord, limiter: Optional[asyncio.Semaphore]) -> EntityPosition:
        if limiter is None:
            resolution = await self.resolver.locate(entity.location_text)
        else:
            async with limiter:
                resolution = await self.resolver.locate(entity.location_text)
        return EntityPosition(
            entity_id=entity.id,
            base=resolution.coordinate,
            jittered=self.jitter(resolution.coordinate, entity.id),
            metadata=dict(entity.metadata),
            located=resolution.known,
        )

    async def resolve_all(
        self,
        entities: Iterable[EntityInput],
        query: Optional[ProximityQuery] = None,
        *,
        run_id: Optional[str] = None,
    ) -> MapPayload:
        """Resolve, obfuscate and (optionally) radius-filter a batch of entities."""
        records: List[EntityRecord] = []
        skipped: List[str] = []
        for raw in entities:
            self.metrics.incr("entities_in")
            try:
                records.append(coerce_entity(raw))
            except ValueError as exc:
                self.metrics.incr("entities_skipped")
                skipped.append(str(exc))
                LOGGER.warning("entity_skipped", reason=str(exc))

        set_context(run_id=run_id or uuid.uuid4().hex[:12], batch_size=len(records))
        try:
            limiter = asyncio.Semaphore(self._concurrency) if self._concurrency else None
            with record_duration(self.metrics, "run_duration_ms"):
                positions = list(await asyncio.gather(*(self._position(record, limiter) for record in records)))

            polygon: Optional[RadiusPolygon] = None
            if query is not None and query.active:
                kept = [
                    p for p in positions
                    if within_radius(query.center, p.jittered if p.located else None, query.radius_km)
                ]
                self.metrics.incr("entities_filtered", len(positions) - len(kept))
                positions = kept
                polygon = build_radius_polygon(query.center, query.radius_km, self._segments)

            self.metrics.incr("entities_out", len(positions))
            LOGGER.info(
                "batch_resolved",
                entities=len(records),
                shown=len(positions),
                skipped=len(skipped),
                radius_km=query.radius_km if query is not None else None,
            )
            return MapPayload(
                positions=positions,
                polygon=polygon,
                bounds=bounding_box(p.jittered for p in positions),
                skipped=skipped,
            )
        finally:
            clear_context()
