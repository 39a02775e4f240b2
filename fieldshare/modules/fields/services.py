import logging
from typing import Any, Dict, List, Optional

from fieldshare.core import geometry
from fieldshare.core.exceptions import FieldNotFound
from fieldshare.models import AdjacentField, Field
from fieldshare.modules.adjacency.proximity import AdjacencyResult, ProximityEngine
from fieldshare.modules.fields.overlap import OverlapResult, OverlapValidator
from fieldshare.modules.fields.projection import AccessProjector
from fieldshare.modules.fields.schemas import FieldCreate, FieldUpdate, FieldView
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)


class FieldService:
    """
    Field write path: validate -> lock -> overlap check -> persist ->
    recompute adjacency, committed as one unit. Any failure rolls the whole
    write back, so a rejected boundary never leaves edges behind.
    """

    def __init__(
        self,
        repository: FieldRepository,
        proximity: Optional[ProximityEngine] = None,
        overlap: Optional[OverlapValidator] = None,
        projector: Optional[AccessProjector] = None,
    ):
        self.repository = repository
        self.proximity = proximity or ProximityEngine(repository)
        self.overlap = overlap or OverlapValidator(repository)
        self.projector = projector or AccessProjector(repository)

    def create_field(self, user_id: str, field_data: FieldCreate) -> Field:
        data = field_data.model_dump()
        geometry.parse_geometry(data["geometry"])
        try:
            self.repository.lock_for_geometry_write()
            self.overlap.ensure_no_overlap(data["geometry"], owner_user_id=user_id)

            field = self.repository.create_field({**data, "user_id": user_id})
            self.proximity.recompute_adjacency(field.id)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        logger.info(f"Created field {field.id} '{field.name}' for user {user_id}")
        return field

    def update_field(self, field_id: str, user_id: str, field_data: FieldUpdate) -> Field:
        field = self.get_owned_field(field_id, user_id)
        changes = field_data.model_dump(exclude_unset=True)
        new_geometry = changes.get("geometry")
        geometry_changed = new_geometry is not None and new_geometry != field.geometry
        if "geometry" in changes and new_geometry is None:
            # A stored field always keeps a boundary
            del changes["geometry"]

        try:
            if geometry_changed:
                self.repository.lock_for_geometry_write()
                self.overlap.ensure_no_overlap(new_geometry, exclude_field_id=field_id, owner_user_id=user_id)

            field = self.repository.update_field(field_id, changes)
            if geometry_changed:
                self.proximity.recompute_adjacency(field_id)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        logger.info(f"Updated field {field_id} ({', '.join(sorted(changes)) or 'no changes'})")
        return field

    def delete_field(self, field_id: str, user_id: str) -> None:
        self.get_owned_field(field_id, user_id)
        try:
            self.repository.delete_field(field_id)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise
        logger.info(f"Deleted field {field_id}")

    def get_my_fields(self, user_id: str) -> List[Field]:
        return self.repository.get_fields_by_user(user_id)

    def get_field_for_viewer(self, field_id: str, viewer_user_id: str) -> FieldView:
        field = self.repository.get_field(field_id)
        if field is None:
            raise FieldNotFound(field_id)
        return self.projector.project(field, viewer_user_id)

    def check_overlap(self, boundary: Dict[str, Any], exclude_field_id: Optional[str] = None) -> OverlapResult:
        return self.overlap.check_overlap(boundary, exclude_field_id=exclude_field_id)

    def adjacent_edges(self, field_id: str, user_id: str) -> List[AdjacentField]:
        self.get_owned_field(field_id, user_id)
        return self.proximity.adjacent_edges(field_id)

    def recompute_adjacency(self, field_id: str, user_id: str) -> AdjacencyResult:
        self.get_owned_field(field_id, user_id)
        result = self.proximity.recompute_adjacency(field_id)
        self.repository.commit()
        return result

    def get_owned_field(self, field_id: str, user_id: str) -> Field:
        # Someone else's field reads as missing
        field = self.repository.get_field(field_id)
        if field is None or field.user_id != user_id:
            raise FieldNotFound(field_id)
        return field
