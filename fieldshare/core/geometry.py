"""
GeoJSON geometry operations for field boundaries.

All functions accept either a GeoJSON mapping (a Polygon, a MultiPolygon,
or a Feature wrapping one) or an already-parsed shapely geometry, and never
mutate their input.

Topology (intersects / overlaps) is evaluated directly on [lng, lat]
coordinates. Anything measured in meters is computed in a local azimuthal
equidistant projection; pairwise measurements use one frame centred between
both inputs so that f(a, b) and f(b, a) agree.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Tuple, Union

from pyproj import Geod, Transformer
from pyproj.exceptions import ProjError
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform
from shapely.validation import explain_validity

from fieldshare.core.exceptions import GeometryError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]  # (lng, lat)
GeometryLike = Union[Dict[str, Any], BaseGeometry]

FIELD_GEOMETRY_TYPES = ("Polygon", "MultiPolygon")

_GEOD = Geod(ellps="WGS84")


# --- Parsing / validation ---

def unwrap_feature(geojson: Dict[str, Any]) -> Dict[str, Any]:
    """Return the bare geometry of a Feature, or the geometry itself."""
    if not isinstance(geojson, dict):
        raise GeometryError("Geometry must be a GeoJSON object")
    if geojson.get("type") == "Feature":
        inner = geojson.get("geometry")
        if not inner:
            raise GeometryError("Feature has no geometry")
        return inner
    return geojson


def _parse_ring(ring: Any, label: str) -> List[Point]:
    if not isinstance(ring, (list, tuple)) or len(ring) < 4:
        count = len(ring) if isinstance(ring, (list, tuple)) else 0
        raise GeometryError(f"{label} must have at least 4 positions (got {count})")

    points: List[Point] = []
    for position in ring:
        if not isinstance(position, (list, tuple)) or len(position) < 2:
            raise GeometryError(f"{label} contains a position that is not a [lng, lat] pair")
        try:
            lng, lat = float(position[0]), float(position[1])
        except (TypeError, ValueError):
            raise GeometryError(f"{label} contains a non-numeric coordinate")
        if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
            raise GeometryError(f"{label} has a coordinate outside lng/lat range: [{lng}, {lat}]")
        points.append((lng, lat))

    if points[0] != points[-1]:
        raise GeometryError(f"{label} is not closed: first and last positions must be identical")
    if len(set(points)) < 3:
        raise GeometryError(f"{label} needs at least 3 distinct points")
    return points


def _parse_polygon(rings: Any, label: str) -> Polygon:
    if not isinstance(rings, (list, tuple)) or not rings:
        raise GeometryError(f"{label} must have at least one linear ring")
    shell = _parse_ring(rings[0], f"{label} outer ring")
    holes = [_parse_ring(ring, f"{label} hole {i}") for i, ring in enumerate(rings[1:], start=1)]
    return Polygon(shell, holes)


def parse_geometry(geometry: GeometryLike) -> BaseGeometry:
    """
    Validate a field geometry and return it as a shapely geometry.

    Raises:
        GeometryError: unsupported type, too few points, unclosed rings,
            zero area or self-intersection. The message names the defect.
    """
    if isinstance(geometry, BaseGeometry):
        return _check_shape(geometry)

    geom = unwrap_feature(geometry)
    geom_type = geom.get("type")
    coordinates = geom.get("coordinates")

    if geom_type == "Polygon":
        shp = _parse_polygon(coordinates, "Polygon")
    elif geom_type == "MultiPolygon":
        if not isinstance(coordinates, (list, tuple)) or not coordinates:
            raise GeometryError("MultiPolygon must contain at least one polygon")
        shp = MultiPolygon([
            _parse_polygon(rings, f"Polygon {i}") for i, rings in enumerate(coordinates)
        ])
    else:
        raise GeometryError(
            f"Unsupported geometry type '{geom_type}'; field boundaries must be Polygon or MultiPolygon"
        )
    return _check_shape(shp)


def _check_shape(shp: BaseGeometry) -> BaseGeometry:
    if shp.geom_type not in FIELD_GEOMETRY_TYPES:
        raise GeometryError(f"Unsupported geometry type '{shp.geom_type}'")
    if shp.is_empty:
        raise GeometryError("Geometry is empty")
    if not shp.is_valid:
        raise GeometryError(f"Invalid boundary: {explain_validity(shp)}")
    if shp.area == 0:
        raise GeometryError("Boundary encloses no area")
    return shp


def is_valid_field_geometry(geometry: Any) -> bool:
    """Non-raising variant of parse_geometry, for filtering."""
    if geometry is None:
        return False
    try:
        parse_geometry(geometry)
    except GeometryError:
        return False
    return True


def _polygons(shp: BaseGeometry) -> List[Polygon]:
    return list(shp.geoms) if isinstance(shp, MultiPolygon) else [shp]


# --- Points and distances ---

def centroid(geometry: GeometryLike) -> Point:
    """
    Arithmetic mean of all outer-ring vertices (closing vertex excluded).
    Not area-weighted; at field scale the difference is negligible.
    """
    shp = parse_geometry(geometry)
    xs: List[float] = []
    ys: List[float] = []
    for polygon in _polygons(shp):
        for x, y in list(polygon.exterior.coords)[:-1]:
            xs.append(x)
            ys.append(y)
    return sum(xs) / len(xs), sum(ys) / len(ys)


def distance_meters(point_a: Point, point_b: Point) -> float:
    """Geodesic distance on the WGS84 ellipsoid."""
    _, _, dist = _GEOD.inv(point_a[0], point_a[1], point_b[0], point_b[1])
    return abs(dist)


def centroid_distance_meters(geom_a: GeometryLike, geom_b: GeometryLike) -> float:
    return distance_meters(centroid(geom_a), centroid(geom_b))


# --- Local metric frame ---

@lru_cache(maxsize=512)
def _local_transformers(lng0: float, lat0: float) -> Tuple[Transformer, Transformer]:
    local_crs = f"+proj=aeqd +lat_0={lat0} +lon_0={lng0} +datum=WGS84 +units=m +no_defs"
    forward = Transformer.from_crs("EPSG:4326", local_crs, always_xy=True)
    inverse = Transformer.from_crs(local_crs, "EPSG:4326", always_xy=True)
    return forward, inverse


def _frame(*centres: Point) -> Tuple[Transformer, Transformer]:
    lng0 = sum(c[0] for c in centres) / len(centres)
    lat0 = sum(c[1] for c in centres) / len(centres)
    return _local_transformers(round(lng0, 6), round(lat0, 6))


def _to_meters(shp: BaseGeometry, forward: Transformer) -> BaseGeometry:
    return transform(forward.transform, shp)


# --- Predicates ---

def intersects(geom_a: GeometryLike, geom_b: GeometryLike) -> bool:
    """True if the two boundaries share any point (touching counts)."""
    a, b = parse_geometry(geom_a), parse_geometry(geom_b)
    try:
        return bool(a.intersects(b))
    except ShapelyError as exc:
        raise GeometryError(f"Intersection test failed: {exc}") from exc


def overlaps(geom_a: GeometryLike, geom_b: GeometryLike) -> bool:
    """
    True when the polygons share interior area: a partial overlap, or one
    lying entirely within the other (either direction). Polygons that only
    touch along an edge or at a vertex do not overlap.
    """
    a, b = parse_geometry(geom_a), parse_geometry(geom_b)
    try:
        return bool(a.overlaps(b) or a.within(b) or b.within(a))
    except ShapelyError as exc:
        raise GeometryError(f"Overlap test failed: {exc}") from exc


# --- Metric operations ---

def buffer_meters(geometry: GeometryLike, distance: float) -> Dict[str, Any]:
    """Dilate a boundary outward by `distance` meters; returns a GeoJSON geometry."""
    return mapping(buffer_shape(geometry, distance))


def buffer_shape(geometry: GeometryLike, distance: float) -> BaseGeometry:
    shp = parse_geometry(geometry)
    forward, inverse = _frame(centroid(shp))
    try:
        dilated = _to_meters(shp, forward).buffer(distance)
        return transform(inverse.transform, dilated)
    except (ShapelyError, ProjError) as exc:
        raise GeometryError(f"Buffer of {distance} m failed: {exc}") from exc


def perimeter_meters(geometry: GeometryLike) -> float:
    """Total length of the outer rings, in meters."""
    shp = parse_geometry(geometry)
    forward, _ = _frame(centroid(shp))
    try:
        projected = _to_meters(shp, forward)
        return float(sum(p.exterior.length for p in _polygons(projected)))
    except (ShapelyError, ProjError) as exc:
        raise GeometryError(f"Perimeter computation failed: {exc}") from exc


def boundary_intersection_length(
    geom_a: GeometryLike,
    geom_b: GeometryLike,
    tolerance_m: float = 0.0,
) -> float:
    """
    Meters of b's boundary lying on a's boundary, or within `tolerance_m`
    of it when a tolerance is given. 0.0 when the boundaries do not meet.
    """
    a, b = parse_geometry(geom_a), parse_geometry(geom_b)
    forward, _ = _frame(centroid(a), centroid(b))
    try:
        pa, pb = _to_meters(a, forward), _to_meters(b, forward)
        reach = pa.boundary.buffer(tolerance_m) if tolerance_m > 0 else pa.boundary
        return float(pb.boundary.intersection(reach).length)
    except (ShapelyError, ProjError) as exc:
        raise GeometryError(f"Boundary intersection failed: {exc}") from exc


def overlap_percentage(geom_a: GeometryLike, geom_b: GeometryLike) -> float:
    """Share of a's area covered by b, as a percentage (0-100)."""
    a, b = parse_geometry(geom_a), parse_geometry(geom_b)
    forward, _ = _frame(centroid(a), centroid(b))
    try:
        pa, pb = _to_meters(a, forward), _to_meters(b, forward)
        return float(pa.intersection(pb).area / pa.area * 100.0)
    except (ShapelyError, ProjError) as exc:
        raise GeometryError(f"Overlap area computation failed: {exc}") from exc


def ring_vertices(geometry: GeometryLike) -> List[Point]:
    """Outer-ring vertices of every polygon, closing vertex excluded."""
    shp = parse_geometry(geometry)
    vertices: List[Point] = []
    for polygon in _polygons(shp):
        vertices.extend(list(polygon.exterior.coords)[:-1])
    return vertices
