from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from fieldshare.modules.adjacency.proximity import ProximityEngine
from fieldshare.modules.auth.router import get_current_user_id, get_repository
from fieldshare.modules.fields.projection import AccessLevel, AccessProjector, render_view
from fieldshare.repository import SqlAlchemyFieldRepository
from . import schemas, services

router = APIRouter(prefix="/fields", tags=["Fields"])


def get_field_service(repository: SqlAlchemyFieldRepository = Depends(get_repository)) -> services.FieldService:
    return services.FieldService(repository)


@router.get("/", response_model=List[schemas.OwnerFieldView])
def get_my_fields(
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    return [render_view(f, AccessLevel.OWNER) for f in field_service.get_my_fields(user_id)]


@router.get("/map", response_model=List[schemas.FieldView])
def get_map_fields(
    user_id: str = Depends(get_current_user_id),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    """
    Everything the map shows: the caller's fields plus every adjacent
    neighbor field, each rendered at the caller's access level.
    """
    return AccessProjector(repository).list_fields_for_map(user_id)


@router.get("/permitted", response_model=List[schemas.FieldView])
def get_permitted_fields(
    user_id: str = Depends(get_current_user_id),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    """Neighbor fields the caller was granted, wherever they are."""
    return AccessProjector(repository).list_permitted_fields(user_id)


@router.get("/nearby", response_model=List[schemas.NearbyFieldResponse])
def get_nearby_fields(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=50),
    user_id: str = Depends(get_current_user_id),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    """
    Fields whose centroid is within `radius_km` of a point, nearest first.
    Works before any adjacency has been computed (e.g. while drawing).
    """
    nearby = ProximityEngine(repository).find_nearby_fields((lng, lat), radius_km)
    views = AccessProjector(repository).project_many([n.field for n in nearby], user_id)
    by_id = {v.id: v for v in views}
    return [{"field": by_id[n.field.id], "distance_m": n.distance} for n in nearby]


@router.post("/check-overlap", response_model=schemas.OverlapCheckResponse)
def check_overlap(
    request: schemas.OverlapCheckRequest,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    result = field_service.check_overlap(request.geometry, request.exclude_field_id)
    return {
        "has_overlap": result.has_overlap,
        "overlapping_fields": result.overlapping_field_names,
        "overlaps": [
            {"field_id": c.field_id, "name": c.name, "overlap_percentage": c.percentage}
            for c in result.conflicts
        ],
    }


@router.post("/", response_model=schemas.OwnerFieldView, status_code=status.HTTP_201_CREATED)
def create_field(
    field: schemas.FieldCreate,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    new_field = field_service.create_field(user_id, field)
    return render_view(new_field, AccessLevel.OWNER)


@router.get("/{field_id}", response_model=schemas.FieldView)
def get_field(
    field_id: str,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    return field_service.get_field_for_viewer(field_id, user_id)


@router.put("/{field_id}", response_model=schemas.OwnerFieldView)
def update_field(
    field_id: str,
    field: schemas.FieldUpdate,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    updated = field_service.update_field(field_id, user_id, field)
    return render_view(updated, AccessLevel.OWNER)


@router.delete("/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_field(
    field_id: str,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    field_service.delete_field(field_id, user_id)


@router.get("/{field_id}/adjacent", response_model=List[schemas.AdjacentEdgeResponse])
def get_adjacent_edges(
    field_id: str,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    return field_service.adjacent_edges(field_id, user_id)


@router.post("/{field_id}/recompute-adjacency")
def recompute_adjacency(
    field_id: str,
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
):
    result = field_service.recompute_adjacency(field_id, user_id)
    return {
        "field_id": result.field_id,
        "edges_created": result.edges_created,
        "candidates_checked": result.candidates_checked,
        "candidates_skipped": result.candidates_skipped,
    }


@router.get("/{field_id}/nearby", response_model=List[schemas.NearbyFieldResponse])
def get_fields_near_field(
    field_id: str,
    radius_km: Optional[float] = Query(None, gt=0, le=50),
    user_id: str = Depends(get_current_user_id),
    field_service: services.FieldService = Depends(get_field_service),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    """Fields around one of the caller's own fields, itself excluded."""
    field = field_service.get_owned_field(field_id, user_id)
    nearby = [
        n for n in ProximityEngine(repository).find_nearby_fields_for_geometry(field.geometry, radius_km)
        if n.field.id != field_id
    ]
    views = AccessProjector(repository).project_many([n.field for n in nearby], user_id)
    by_id = {v.id: v for v in views}
    return [{"field": by_id[n.field.id], "distance_m": n.distance} for n in nearby]
