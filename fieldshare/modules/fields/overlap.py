"""
Write-time guard against overlapping field boundaries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shapely.errors import ShapelyError
from shapely.strtree import STRtree

from fieldshare.config import settings
from fieldshare.core import geometry
from fieldshare.core.exceptions import GeometryError, OverlapConflict
from fieldshare.models import Field
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)

# The heuristic calls two boundaries conflicting above this many shared vertices
SHARED_VERTEX_LIMIT = 2


@dataclass
class FieldOverlap:
    field_id: str
    name: str
    # Share of the candidate's area inside this field; None when not measurable
    percentage: Optional[float] = None


@dataclass
class OverlapResult:
    has_overlap: bool
    overlapping_field_names: List[str] = field(default_factory=list)
    method: str = "spatial"
    conflicts: List[FieldOverlap] = field(default_factory=list)


class OverlapValidator:
    """
    Checks a candidate boundary against every stored field (all owners).

    A conflict is any shared interior area: partial overlap, the candidate
    inside an existing field, or an existing field inside the candidate.
    The spatial check is authoritative; only when it errors does the
    validator fall back to counting shared vertices. A stored field with
    an unusable boundary is skipped, never a reason to fall back.
    """

    def __init__(self, repository: FieldRepository, vertex_tolerance_deg: Optional[float] = None):
        self.repository = repository
        self.vertex_tolerance_deg = vertex_tolerance_deg or settings.OVERLAP_FALLBACK_TOLERANCE_DEG

    def check_overlap(
        self,
        candidate_geometry: Dict[str, Any],
        exclude_field_id: Optional[str] = None,
        owner_user_id: Optional[str] = None,
    ) -> OverlapResult:
        # A malformed candidate is the caller's error, never a reason to degrade
        candidate = geometry.parse_geometry(candidate_geometry)

        try:
            if self.repository.supports_spatial_queries:
                hits = self.repository.find_overlapping_fields(candidate_geometry, exclude_field_id)
            else:
                hits = self._shapely_overlaps(candidate, exclude_field_id)
            conflicts = [_measure(candidate, f) for f in hits]
            method = "spatial"
        except Exception as e:
            logger.error(f"Spatial overlap check failed, falling back to vertex matching: {e}")
            conflicts = [
                FieldOverlap(field_id=f.id, name=f.name)
                for f in self._shared_vertex_overlaps(candidate, exclude_field_id)
            ]
            method = "vertex_fallback"

        names = [c.name for c in conflicts]
        if names:
            logger.info(f"Overlap check ({method}) for user {owner_user_id}: conflicts with {names}")
        return OverlapResult(
            has_overlap=bool(names), overlapping_field_names=names, method=method, conflicts=conflicts
        )

    def ensure_no_overlap(
        self,
        candidate_geometry: Dict[str, Any],
        exclude_field_id: Optional[str] = None,
        owner_user_id: Optional[str] = None,
    ) -> OverlapResult:
        result = self.check_overlap(candidate_geometry, exclude_field_id, owner_user_id)
        if result.has_overlap:
            raise OverlapConflict(result.overlapping_field_names)
        return result

    def _existing_fields(self, exclude_field_id: Optional[str]):
        for existing in self.repository.iter_all_fields():
            if existing.id == exclude_field_id or not existing.geometry:
                continue
            yield existing

    def _shapely_overlaps(self, candidate, exclude_field_id: Optional[str]) -> List[Field]:
        fields: List[Field] = []
        shapes = []
        for existing in self._existing_fields(exclude_field_id):
            try:
                shapes.append(geometry.parse_geometry(existing.geometry))
            except GeometryError as e:
                logger.warning(f"Skipping field {existing.id} in overlap check: {e}")
                continue
            fields.append(existing)
        if not fields:
            return []
        try:
            tree = STRtree(shapes)
            hits = sorted(int(i) for i in tree.query(candidate))
        except ShapelyError as e:
            raise GeometryError(f"Spatial index query failed: {e}") from e
        return [fields[i] for i in hits if geometry.overlaps(candidate, shapes[i])]

    def _shared_vertex_overlaps(self, candidate, exclude_field_id: Optional[str]) -> List[Field]:
        tolerance = self.vertex_tolerance_deg
        candidate_vertices = geometry.ring_vertices(candidate)
        matches: List[Field] = []
        for existing in self._existing_fields(exclude_field_id):
            existing_vertices = _raw_outer_vertices(existing.geometry)
            shared = sum(
                1
                for cx, cy in candidate_vertices
                for ex, ey in existing_vertices
                if abs(cx - ex) < tolerance and abs(cy - ey) < tolerance
            )
            if shared > SHARED_VERTEX_LIMIT:
                matches.append(existing)
        return matches


def _measure(candidate, existing: Field) -> FieldOverlap:
    try:
        percentage = round(geometry.overlap_percentage(candidate, existing.geometry), 2)
    except GeometryError as e:
        logger.warning(f"Could not measure overlap with field {existing.id}: {e}")
        percentage = None
    return FieldOverlap(field_id=existing.id, name=existing.name, percentage=percentage)


def _raw_outer_vertices(geojson: Dict[str, Any]) -> List[geometry.Point]:
    """Outer-ring positions read straight from GeoJSON, tolerating bad shapes."""
    try:
        geom = geometry.unwrap_feature(geojson)
    except GeometryError:
        return []
    coordinates = geom.get("coordinates") or []
    polygons = coordinates if geom.get("type") == "MultiPolygon" else [coordinates]
    vertices: List[geometry.Point] = []
    for rings in polygons:
        if rings and rings[0]:
            vertices.extend((float(p[0]), float(p[1])) for p in rings[0][:-1] if len(p) >= 2)
    return vertices
