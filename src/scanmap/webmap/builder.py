"""Compose a Leaflet page from tile URL templates and GeoJSON overlays."""

from __future__ import annotations

import html
import json
from dataclasses import dataclass, field
from importlib.resources import files
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional, Sequence, Tuple

from scanmap.core.models import WebMapConfig
from scanmap.logging import get_logger

LOGGER = get_logger(__name__)

Bounds = Tuple[float, float, float, float]
PLACEHOLDERS = ("{z}", "{x}", "{y}")


@dataclass(frozen=True)
class TileLayer:
    """A raster tile source addressed by a ``{z}/{x}/{y}`` URL template."""

    name: str
    url_template: str
    tms: bool = False
    opacity: float = 1.0
    attribution: str = ""
    min_zoom: int = 0
    max_zoom: int = 22
    bounds: Optional[Bounds] = None

    def __post_init__(self) -> None:
        missing = [token for token in PLACEHOLDERS if token not in self.url_template]
        if missing:
            raise ValueError(f"Tile URL template for {self.name} lacks {', '.join(missing)}")
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError("opacity must be between 0 and 1")


@dataclass(frozen=True)
class VectorOverlay:
    name: str
    geojson: Dict[str, Any]
    color: str = "#d62728"
    weight: int = 2
    fill_opacity: float = 0.0


@dataclass
class WebMapBuilder:
    config: WebMapConfig = field(default_factory=WebMapConfig)

    def render(
        self,
        layers: Sequence[TileLayer],
        overlays: Sequence[VectorOverlay] = (),
        *,
        title: Optional[str] = None,
        center: Optional[Tuple[float, float]] = None,
        zoom: Optional[int] = None,
    ) -> str:
        """Return the HTML document for the given layers and overlays."""

        bounds = _union_bounds([layer.bounds for layer in layers] + [_geojson_bounds(o.geojson) for o in overlays])
        if center is None:
            center = _center_of(bounds) if bounds else (0.0, 0.0)
        payload = {
            "center": list(center),
            "zoom": self.config.zoom if zoom is None else zoom,
            "bounds": list(bounds) if bounds else None,
            "basemap": {"url": self.config.basemap_url, "attribution": self.config.attribution},
            "layers": [
                {
                    "name": layer.name,
                    "url": layer.url_template,
                    "tms": layer.tms,
                    "opacity": layer.opacity,
                    "attribution": layer.attribution,
                    "min_zoom": layer.min_zoom,
                    "max_zoom": layer.max_zoom,
                    "bounds": list(layer.bounds) if layer.bounds else None,
                }
                for layer in layers
            ],
            "overlays": [
                {
                    "name": overlay.name,
                    "data": overlay.geojson,
                    "color": overlay.color,
                    "weight": overlay.weight,
                    "fill_opacity": overlay.fill_opacity,
                }
                for overlay in overlays
            ],
        }
        # Keep the embedded JSON from closing its <script> element.
        config_json = json.dumps(payload).replace("</", "<\\/")
        return _load_template().substitute(
            title=html.escape(title or self.config.title),
            config=config_json,
        )

    def build(
        self,
        layers: Sequence[TileLayer],
        overlays: Sequence[VectorOverlay],
        destination: Path,
        *,
        title: Optional[str] = None,
        center: Optional[Tuple[float, float]] = None,
        zoom: Optional[int] = None,
    ) -> Path:
        document = self.render(layers, overlays, title=title, center=center, zoom=zoom)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(document, encoding="utf-8")
        LOGGER.info(
            "web map written",
            extra={"path": str(destination), "layers": len(layers), "overlays": len(overlays)},
        )
        return destination


def load_overlay(path: Path, *, name: Optional[str] = None, color: str = "#d62728") -> VectorOverlay:
    data = json.loads(path.read_text(encoding="utf-8"))
    if data.get("type") not in {"FeatureCollection", "Feature"}:
        raise ValueError(f"{path} is not a GeoJSON Feature or FeatureCollection")
    return VectorOverlay(name=name or path.stem, geojson=data, color=color)


def _load_template() -> Template:
    template = files("scanmap.webmap").joinpath("templates", "index.html")
    return Template(template.read_text(encoding="utf-8"))


def _geojson_bounds(data: Dict[str, Any]) -> Optional[Bounds]:
    bbox = data.get("bbox")
    if isinstance(bbox, list) and len(bbox) == 4:
        return (float(bbox[0]), float(bbox[1]), float(bbox[2]), float(bbox[3]))
    points: List[Tuple[float, float]] = []
    features = data.get("features") if data.get("type") == "FeatureCollection" else [data]
    for feature in features or []:
        geometry = (feature or {}).get("geometry") or {}
        _collect_points(geometry.get("coordinates"), points)
    if not points:
        return None
    lons = [lon for lon, _ in points]
    lats = [lat for _, lat in points]
    return (min(lons), min(lats), max(lons), max(lats))


def _collect_points(coordinates: Any, points: List[Tuple[float, float]]) -> None:
    if not isinstance(coordinates, list) or not coordinates:
        return
    if isinstance(coordinates[0], (int, float)):
        points.append((float(coordinates[0]), float(coordinates[1])))
        return
    for item in coordinates:
        _collect_points(item, points)


def _union_bounds(candidates: Sequence[Optional[Bounds]]) -> Optional[Bounds]:
    present = [bounds for bounds in candidates if bounds is not None]
    if not present:
        return None
    return (
        min(bounds[0] for bounds in present),
        min(bounds[1] for bounds in present),
        max(bounds[2] for bounds in present),
        max(bounds[3] for bounds in present),
    )


def _center_of(bounds: Bounds) -> Tuple[float, float]:
    west, south, east, north = bounds
    return ((south + north) / 2.0, (west + east) / 2.0)


def layer_from_tilejson(path: Path, *, opacity: float = 1.0) -> TileLayer:
    """Build a :class:`TileLayer` from a TileJSON document written by ``publish``."""

    data = json.loads(path.read_text(encoding="utf-8"))
    tiles = data.get("tiles") or []
    if not tiles:
        raise ValueError(f"{path} lists no tile URLs")
    bounds = data.get("bounds")
    if bounds is not None and len(bounds) != 4:
        raise ValueError(f"{path} has malformed bounds: {bounds}")
    return TileLayer(
        name=data.get("name") or path.name.split(".")[0],
        url_template=tiles[0],
        tms=data.get("scheme") == "tms",
        opacity=opacity,
        attribution=data.get("attribution", ""),
        min_zoom=int(data.get("minzoom", 0)),
        max_zoom=int(data.get("maxzoom", 22)),
        bounds=tuple(float(value) for value in bounds) if bounds is not None else None,  # type: ignore[arg-type]
    )
