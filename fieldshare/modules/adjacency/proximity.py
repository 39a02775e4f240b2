"""
Proximity / adjacency computation between field boundaries.

Two distance policies live side by side:
- discovery: centroid within DISCOVERY_RADIUS_M (5 km) -> "nearby"
- adjacency: boundary within ADJACENCY_BUFFER_M (10 m) of the anchor,
  tested by buffering the anchor and intersecting -> persisted edge

Both come from one ProximityPolicy so every call site uses the same numbers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from fieldshare.config import settings
from fieldshare.core import geometry
from fieldshare.core.exceptions import AdjacencyComputationPartialFailure, GeometryError
from fieldshare.models import AdjacentField, Field
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProximityPolicy:
    discovery_radius_m: float = 5000.0
    adjacency_buffer_m: float = 10.0
    # Optional extra centroid cut-off for adjacency (the old 100 m rule)
    adjacency_centroid_m: Optional[float] = None
    shared_boundary_fallback_ratio: float = 0.1

    @classmethod
    def from_settings(cls) -> "ProximityPolicy":
        return cls(
            discovery_radius_m=settings.DISCOVERY_RADIUS_M,
            adjacency_buffer_m=settings.ADJACENCY_BUFFER_M,
            adjacency_centroid_m=settings.ADJACENCY_CENTROID_M,
            shared_boundary_fallback_ratio=settings.SHARED_BOUNDARY_FALLBACK_RATIO,
        )


@dataclass
class AdjacencyResult:
    field_id: str
    edges_created: int = 0
    candidates_checked: int = 0
    candidates_skipped: int = 0


@dataclass
class NearbyField:
    field: Field
    distance: float  # meters


def within_radius(distance_m: float, radius_m: float) -> bool:
    """Inclusive radius test at millimetre precision."""
    return round(distance_m, 3) <= radius_m


class ProximityEngine:
    def __init__(self, repository: FieldRepository, policy: Optional[ProximityPolicy] = None):
        self.repository = repository
        self.policy = policy or ProximityPolicy.from_settings()

    def recompute_adjacency(self, field_id: str) -> AdjacencyResult:
        """
        Rebuild every edge touching `field_id`.

        Idempotent: edges are cleared first, then each other field with a
        usable boundary is evaluated. A candidate whose geometry cannot be
        measured is logged and skipped; it never aborts the rest.
        """
        result = AdjacencyResult(field_id=field_id)
        field = self.repository.get_field(field_id)
        if field is None:
            logger.warning(f"Adjacency recompute skipped: field {field_id} not found")
            return result

        self.repository.delete_adjacent_field_edges_for(field_id)

        if not field.geometry:
            logger.info(f"Field {field_id} has no geometry; no adjacency computed")
            return result
        try:
            anchor = geometry.parse_geometry(field.geometry)
        except GeometryError as e:
            logger.warning(f"Field {field_id} has unusable geometry ({e}); no adjacency computed")
            return result

        anchor_centroid = geometry.centroid(anchor)
        buffered_anchor = geometry.buffer_shape(anchor, self.policy.adjacency_buffer_m)

        for candidate in self.repository.iter_all_fields():
            if candidate.id == field_id or not candidate.geometry:
                continue
            result.candidates_checked += 1
            try:
                edge = self._evaluate_candidate(field, anchor, anchor_centroid, buffered_anchor, candidate)
            except AdjacencyComputationPartialFailure as failure:
                logger.warning(str(failure))
                result.candidates_skipped += 1
                continue
            if edge is not None:
                self.repository.create_adjacent_field_edge(field_id, candidate.id, *edge)
                result.edges_created += 1

        logger.info(
            f"Adjacency for field {field_id}: {result.edges_created} edges, "
            f"{result.candidates_checked} candidates, {result.candidates_skipped} skipped"
        )
        return result

    def _evaluate_candidate(
        self, field: Field, anchor, anchor_centroid, buffered_anchor, candidate: Field
    ) -> Optional[Tuple[float, float]]:
        """Returns (distance, shared_boundary_length) when adjacent, else None."""
        try:
            other = geometry.parse_geometry(candidate.geometry)
            distance = geometry.distance_meters(anchor_centroid, geometry.centroid(other))

            if not within_radius(distance, self.policy.discovery_radius_m):
                return None
            if self.policy.adjacency_centroid_m is not None and not within_radius(
                distance, self.policy.adjacency_centroid_m
            ):
                return None
            if not geometry.intersects(buffered_anchor, other):
                return None
            return distance, self.shared_boundary_length(anchor, other)
        except GeometryError as e:
            raise AdjacencyComputationPartialFailure(field.id, candidate.id, e) from e

    def shared_boundary_length(self, anchor, other) -> float:
        """
        Meters of the neighbor's boundary within the buffer of the anchor's.

        Approximation policy: when the intersection cannot be computed, the
        shared length is estimated as a fixed share (10% by default) of the
        shorter of the two perimeters instead of failing the recompute.
        """
        try:
            return geometry.boundary_intersection_length(
                anchor, other, tolerance_m=self.policy.adjacency_buffer_m
            )
        except GeometryError as e:
            logger.warning(f"Shared boundary intersection failed, using perimeter estimate: {e}")
            shorter = min(geometry.perimeter_meters(anchor), geometry.perimeter_meters(other))
            return shorter * self.policy.shared_boundary_fallback_ratio

    def recompute_all(self) -> Dict[str, int]:
        """Rebuild adjacency for every field; used by the scheduled worker."""
        field_ids = [f.id for f in self.repository.iter_all_fields()]
        edges = 0
        for field_id in field_ids:
            edges += self.recompute_adjacency(field_id).edges_created
        return {"fields_processed": len(field_ids), "edges_created": edges}

    def find_nearby_fields(
        self,
        point: geometry.Point,
        radius_km: Optional[float] = None,
        exclude_field_id: Optional[str] = None,
    ) -> List[NearbyField]:
        """
        Every field whose centroid lies within `radius_km` of `point`
        (default: the discovery radius), nearest first. Needs no
        established adjacency.
        """
        radius_m = radius_km * 1000.0 if radius_km is not None else self.policy.discovery_radius_m
        nearby: List[NearbyField] = []
        for candidate in self.repository.iter_all_fields():
            if candidate.id == exclude_field_id or not candidate.geometry:
                continue
            try:
                distance = geometry.distance_meters(point, geometry.centroid(candidate.geometry))
            except GeometryError as e:
                logger.warning(f"Skipping field {candidate.id} in nearby search: {e}")
                continue
            if within_radius(distance, radius_m):
                nearby.append(NearbyField(field=candidate, distance=distance))
        nearby.sort(key=lambda n: n.distance)
        return nearby

    def find_nearby_fields_for_geometry(
        self, boundary: Dict[str, Any], radius_km: Optional[float] = None
    ) -> List[NearbyField]:
        return self.find_nearby_fields(geometry.centroid(boundary), radius_km)

    def adjacent_edges(self, field_id: str) -> List[AdjacentField]:
        return self.repository.get_adjacent_edges(field_id)
