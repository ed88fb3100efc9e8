"""Fetch named boundary polygons from OpenStreetMap via Overpass."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from scanmap.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "scanmap/0.1 (+https://github.com/scanmap)"

Coord = Tuple[float, float]
Ring = List[Coord]


class BoundaryQueryError(RuntimeError):
    """Raised when the geodata service cannot be reached or answers badly."""


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def parse(cls, value: str) -> Optional["BoundingBox"]:
        """Parse ``"south,west,north,east"``; return ``None`` for place names."""

        parts = [part.strip() for part in value.split(",")]
        if len(parts) != 4:
            return None
        try:
            south, west, north, east = (float(part) for part in parts)
        except ValueError:
            return None
        if south > north or west > east:
            raise ValueError(f"Bounding box corners are inverted: {value}")
        return cls(south=south, west=west, north=north, east=east)

    def to_overpass(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"

    def as_bounds(self) -> Tuple[float, float, float, float]:
        return (self.west, self.south, self.east, self.north)


@dataclass(frozen=True)
class BoundaryFeature:
    """A polygonal OSM element; each polygon is an outer ring plus holes."""

    osm_type: str
    osm_id: int
    tags: Dict[str, str]
    polygons: Tuple[Tuple[Ring, ...], ...]

    def to_geojson(self) -> Dict[str, Any]:
        coordinates = [[[list(point) for point in ring] for ring in polygon] for polygon in self.polygons]
        if len(coordinates) == 1:
            geometry = {"type": "Polygon", "coordinates": coordinates[0]}
        else:
            geometry = {"type": "MultiPolygon", "coordinates": coordinates}
        properties = dict(self.tags)
        properties["osm_id"] = f"{self.osm_type}/{self.osm_id}"
        return {"type": "Feature", "geometry": geometry, "properties": properties}


@dataclass
class BoundaryCollection:
    features: List[BoundaryFeature] = field(default_factory=list)
    bbox: Optional[BoundingBox] = None

    def __len__(self) -> int:
        return len(self.features)

    @property
    def is_empty(self) -> bool:
        return not self.features

    def to_geojson(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": "FeatureCollection",
            "features": [feature.to_geojson() for feature in self.features],
        }
        if self.bbox is not None:
            payload["bbox"] = list(self.bbox.as_bounds())
        return payload


class BoundaryClient:
    """Query Overpass for polygons whose tag matches a feature name."""

    def __init__(
        self,
        *,
        overpass_url: str = DEFAULT_OVERPASS_URL,
        nominatim_url: str = DEFAULT_NOMINATIM_URL,
        timeout: int = 60,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._overpass_url = overpass_url
        self._nominatim_url = nominatim_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

    def resolve_area(self, area: str) -> BoundingBox:
        """Return a bounding box for a coordinate string or a place name."""

        try:
            bbox = BoundingBox.parse(area)
        except ValueError as exc:
            raise BoundaryQueryError(str(exc)) from exc
        if bbox is not None:
            return bbox

        LOGGER.info("geocoding area", extra={"area": area})
        payload = self._request_json(
            "GET",
            self._nominatim_url,
            params={"q": area, "format": "json", "limit": 1},
        )
        if not isinstance(payload, list) or not payload:
            raise BoundaryQueryError(f"Place not found: {area}")
        try:
            south, north, west, east = (float(value) for value in payload[0]["boundingbox"])
        except (KeyError, TypeError, ValueError) as exc:
            raise BoundaryQueryError(f"Malformed geocoder response for {area}") from exc
        return BoundingBox(south=south, west=west, north=north, east=east)

    def fetch(self, area: str, name: str, *, key: str = "name") -> BoundaryCollection:
        """Return the polygons tagged ``key=name`` inside ``area``.

        An empty collection is a valid answer; transport and decoding problems
        raise :class:`BoundaryQueryError`.
        """

        bbox = self.resolve_area(area)
        query = build_query(bbox, name, key=key, timeout=self._timeout)
        LOGGER.info("querying overpass", extra={"bbox": bbox.to_overpass(), "key": key, "feature_name": name})
        payload = self._request_json("POST", self._overpass_url, data={"data": query})
        if not isinstance(payload, dict):
            raise BoundaryQueryError("Overpass response is not a JSON object")

        features = parse_elements(payload.get("elements") or [])
        collection = BoundaryCollection(features=features, bbox=bbox)
        if collection.is_empty:
            LOGGER.warning("no boundary polygons matched", extra={"key": key, "feature_name": name})
        else:
            LOGGER.info("boundary polygons fetched", extra={"features": len(collection)})
        return collection

    def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise BoundaryQueryError(f"Request to {url} failed: {exc}") from exc
        if response.status_code != 200:
            raise BoundaryQueryError(f"Request to {url} failed: HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise BoundaryQueryError(f"Response from {url} is not valid JSON") from exc


def build_query(bbox: BoundingBox, name: str, *, key: str = "name", timeout: int = 60) -> str:
    selector = f'["{_escape(key)}"="{_escape(name)}"]({bbox.to_overpass()})'
    return (
        f"[out:json][timeout:{timeout}];\n"
        "(\n"
        f"  way{selector};\n"
        f"  relation{selector};\n"
        ");\n"
        "out geom;"
    )


def parse_elements(elements: Sequence[Dict[str, Any]]) -> List[BoundaryFeature]:
    """Keep the polygonal subset of Overpass ``out geom`` elements.

    Elements with missing ids or coordinates raise :class:`BoundaryQueryError`.
    """

    features: List[BoundaryFeature] = []
    for element in elements:
        try:
            feature = _parse_element(element)
        except (KeyError, TypeError, ValueError) as exc:
            raise BoundaryQueryError(f"Malformed Overpass element: {element.get('type')}/{element.get('id')}") from exc
        if feature is not None:
            features.append(feature)
    return features


def _parse_element(element: Dict[str, Any]) -> Optional[BoundaryFeature]:
    kind = element.get("type")
    tags = dict(element.get("tags") or {})
    if kind == "way":
        ring = _geometry_to_ring(element.get("geometry"))
        if _is_closed(ring):
            return BoundaryFeature(osm_type="way", osm_id=int(element["id"]), tags=tags, polygons=((ring,),))
    elif kind == "relation" and tags.get("type") in {"multipolygon", "boundary"}:
        polygons = _relation_polygons(element.get("members") or [])
        if polygons:
            return BoundaryFeature(osm_type="relation", osm_id=int(element["id"]), tags=tags, polygons=polygons)
    return None


def write_geojson(collection: BoundaryCollection, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(collection.to_geojson(), indent=2), encoding="utf-8")
    return path


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _geometry_to_ring(geometry: Any) -> Ring:
    if not geometry:
        return []
    return [(float(point["lon"]), float(point["lat"])) for point in geometry if point]


def _is_closed(ring: Ring) -> bool:
    return len(ring) >= 4 and ring[0] == ring[-1]


def _relation_polygons(members: Sequence[Dict[str, Any]]) -> Tuple[Tuple[Ring, ...], ...]:
    outer_segments: List[Ring] = []
    inner_segments: List[Ring] = []
    for member in members:
        if member.get("type") != "way":
            continue
        segment = _geometry_to_ring(member.get("geometry"))
        if len(segment) < 2:
            continue
        if member.get("role") == "inner":
            inner_segments.append(segment)
        else:
            outer_segments.append(segment)

    outers = _assemble_rings(outer_segments)
    inners = _assemble_rings(inner_segments)
    holes: List[List[Ring]] = [[] for _ in outers]
    for inner in inners:
        for index, outer in enumerate(outers):
            if _point_in_ring(inner[0], outer):
                holes[index].append(inner)
                break
    return tuple((outer, *holes[index]) for index, outer in enumerate(outers))


def _assemble_rings(segments: Sequence[Ring]) -> List[Ring]:
    """Join way segments end to end until each closes into a ring."""

    pending = [list(segment) for segment in segments]
    rings: List[Ring] = []
    while pending:
        ring = pending.pop(0)
        extended = True
        while ring[0] != ring[-1] and extended:
            extended = False
            for index, segment in enumerate(pending):
                if segment[0] == ring[-1]:
                    ring.extend(segment[1:])
                elif segment[-1] == ring[-1]:
                    ring.extend(reversed(segment[:-1]))
                elif segment[-1] == ring[0]:
                    ring[:0] = segment[:-1]
                elif segment[0] == ring[0]:
                    ring[:0] = list(reversed(segment[1:]))
                else:
                    continue
                pending.pop(index)
                extended = True
                break
        if _is_closed(ring):
            rings.append(ring)
        else:
            LOGGER.debug("dropping unclosed ring", extra={"points": len(ring)})
    return rings


def _point_in_ring(point: Coord, ring: Ring) -> bool:
    x, y = point
    inside = False
    for (x1, y1), (x2, y2) in zip(ring, ring[1:]):
        if (y1 > y) != (y2 > y):
            crossing = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
            if x < crossing:
                inside = not inside
    return inside
