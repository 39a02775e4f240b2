"""
Access-scoped projection of field records.

Every field leaving the service for a viewer other than its owner goes
through `render_view`, the only place the owner / approved / restricted
shapes are produced.
"""

import copy
import logging
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from fieldshare.models import Field, FieldVisibilityPermission
from fieldshare.modules.fields.schemas import (
    ApprovedFieldView, FieldView, OwnerFieldView, RestrictedFieldView
)
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)


class AccessLevel(str, Enum):
    OWNER = "owner"
    APPROVED = "approved"
    RESTRICTED = "restricted"


EFFECTIVE_PERMISSION_STATUSES = frozenset({"approved", "auto_granted"})


def is_permission_effective(permission: Optional[FieldVisibilityPermission]) -> bool:
    return permission is not None and permission.status in EFFECTIVE_PERMISSION_STATUSES


def _details(field: Field) -> dict:
    return {
        "id": field.id,
        "user_id": field.user_id,
        "name": field.name,
        "geometry": copy.deepcopy(field.geometry),
        "crop": field.crop,
        "spray_types": list(field.spray_types or []),
        "variety": field.variety,
        "season": field.season,
        "status": field.status,
        "acres": float(field.acres) if field.acres is not None else None,
        "created_at": field.created_at,
        "updated_at": field.updated_at,
    }


def render_view(field: Field, level: AccessLevel) -> FieldView:
    if level is AccessLevel.OWNER:
        return OwnerFieldView(**_details(field), notes=field.notes)
    if level is AccessLevel.APPROVED:
        return ApprovedFieldView(**_details(field))
    # Nothing but the id and the boundary may come from the source record
    return RestrictedFieldView(id=field.id, geometry=copy.deepcopy(field.geometry))


class AccessProjector:
    def __init__(self, repository: FieldRepository, clock: Callable[[], datetime] = datetime.utcnow):
        self.repository = repository
        self.clock = clock

    def access_level(self, field: Field, viewer_user_id: str) -> AccessLevel:
        if field.user_id == viewer_user_id:
            return AccessLevel.OWNER
        if is_permission_effective(self.repository.get_permission_for(field.id, viewer_user_id)):
            return AccessLevel.APPROVED
        if self._has_provider_grant(field.user_id, viewer_user_id):
            return AccessLevel.APPROVED
        return AccessLevel.RESTRICTED

    def _has_provider_grant(self, farmer_id: str, provider_id: str) -> bool:
        now = self.clock()
        grants = self.repository.get_service_provider_access_between(farmer_id, provider_id)
        return any(grant.is_effective(now) for grant in grants)

    def project(self, field: Field, viewer_user_id: str) -> FieldView:
        return render_view(field, self.access_level(field, viewer_user_id))

    def project_many(self, fields: Iterable[Field], viewer_user_id: str) -> List[FieldView]:
        """
        One view per distinct field id, in input order. Grants are loaded
        once for the viewer rather than per field.
        """
        permitted: Set[str] = {
            p.owner_field_id
            for p in self.repository.get_permissions_for_viewer(viewer_user_id)
            if is_permission_effective(p)
        }
        now = self.clock()
        granting_farmers: Set[str] = {
            g.farmer_id
            for g in self.repository.get_service_provider_access_for_provider(viewer_user_id)
            if g.is_effective(now)
        }

        views: List[FieldView] = []
        seen: Set[str] = set()
        for field in fields:
            if field.id in seen:
                continue
            seen.add(field.id)
            if field.user_id == viewer_user_id:
                level = AccessLevel.OWNER
            elif field.id in permitted or field.user_id in granting_farmers:
                level = AccessLevel.APPROVED
            else:
                level = AccessLevel.RESTRICTED
            views.append(render_view(field, level))

        summary: Dict[str, int] = Counter(v.access_level for v in views)
        logger.debug(f"Projected {len(views)} fields for viewer {viewer_user_id}: {dict(summary)}")
        return views

    def list_fields_for_map(self, viewer_user_id: str) -> List[FieldView]:
        """The viewer's own fields followed by every field adjacent to them."""
        own = self.repository.get_fields_by_user(viewer_user_id)
        adjacent = [f for f, _ in self.repository.get_adjacent_fields_with_distance(viewer_user_id)]
        logger.info(f"Map for user {viewer_user_id}: {len(own)} own + {len(adjacent)} adjacent fields")
        return self.project_many([*own, *adjacent], viewer_user_id)

    def list_provider_fields(self, provider_id: str) -> List[FieldView]:
        """Every field of every farmer with a live grant to this provider."""
        now = self.clock()
        farmer_ids = sorted({
            g.farmer_id
            for g in self.repository.get_service_provider_access_for_provider(provider_id)
            if g.is_effective(now)
        })
        fields: List[Field] = []
        for farmer_id in farmer_ids:
            fields.extend(self.repository.get_fields_by_user(farmer_id))
        return self.project_many(fields, provider_id)

    def list_permitted_fields(self, viewer_user_id: str) -> List[FieldView]:
        """
        Every field the viewer holds an effective permission on, adjacent
        or not. Private notes never leave with them.
        """
        fields: List[Field] = []
        for permission in self.repository.get_permissions_for_viewer(viewer_user_id):
            if not is_permission_effective(permission):
                continue
            field = self.repository.get_field(permission.owner_field_id)
            if field is not None:
                fields.append(field)
        return self.project_many(fields, viewer_user_id)
