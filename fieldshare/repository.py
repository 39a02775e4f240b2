"""
Persistence boundary for the field sharing core.

`FieldRepository` is the contract the core consumes; `SqlAlchemyFieldRepository`
implements it on a SQLAlchemy session. Repository methods only flush;
committing is left to the service that owns the unit of work.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

from geoalchemy2 import functions as geo_func
from sqlalchemy import Text, cast, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fieldshare.config import settings
from fieldshare.core.exceptions import FieldNotFound
from fieldshare.core.geometry import unwrap_feature
from fieldshare.models import (
    AdjacentField, Field, FieldVisibilityPermission, ServiceProviderAccess, User
)

logger = logging.getLogger(__name__)

GEOMETRY_WRITE_LOCK = "fieldshare:field-geometry"


class FieldRepository(ABC):

    # --- users ---
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_phone(self, phone_number: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, **values) -> User: ...

    # --- fields ---
    @abstractmethod
    def get_field(self, field_id: str) -> Optional[Field]: ...

    @abstractmethod
    def get_fields_by_user(self, user_id: str) -> List[Field]: ...

    @abstractmethod
    def get_all_fields_except(self, user_id: str) -> List[Field]: ...

    @abstractmethod
    def iter_all_fields(self, batch_size: Optional[int] = None) -> Iterator[Field]: ...

    @abstractmethod
    def create_field(self, data: Dict[str, Any]) -> Field: ...

    @abstractmethod
    def update_field(self, field_id: str, data: Dict[str, Any]) -> Field: ...

    @abstractmethod
    def delete_field(self, field_id: str) -> None: ...

    # --- adjacency ---
    @abstractmethod
    def create_adjacent_field_edge(
        self, field_id: str, adjacent_field_id: str, distance: float, shared_boundary_length: float
    ) -> AdjacentField: ...

    @abstractmethod
    def delete_adjacent_field_edges_for(self, field_id: str) -> int: ...

    @abstractmethod
    def get_adjacent_edges(self, field_id: str) -> List[AdjacentField]: ...

    @abstractmethod
    def get_adjacent_fields_with_distance(self, user_id: str) -> List[Tuple[Field, float]]: ...

    # --- visibility permissions ---
    @abstractmethod
    def get_permission(self, permission_id: str) -> Optional[FieldVisibilityPermission]: ...

    @abstractmethod
    def get_permission_for(self, owner_field_id: str, viewer_user_id: str) -> Optional[FieldVisibilityPermission]: ...

    @abstractmethod
    def get_or_create_permission(self, **values) -> Tuple[FieldVisibilityPermission, bool]: ...

    @abstractmethod
    def update_permission_status(self, permission_id: str, status: str) -> FieldVisibilityPermission: ...

    @abstractmethod
    def get_permissions_for_viewer(self, viewer_user_id: str) -> List[FieldVisibilityPermission]: ...

    @abstractmethod
    def get_permissions_for_user(self, user_id: str) -> List[FieldVisibilityPermission]: ...

    @abstractmethod
    def get_pending_permissions_for_owner(self, owner_user_id: str) -> List[FieldVisibilityPermission]: ...

    # --- service providers ---
    @abstractmethod
    def create_service_provider_access(self, data: Dict[str, Any]) -> ServiceProviderAccess: ...

    @abstractmethod
    def get_service_provider_access(self, access_id: str) -> Optional[ServiceProviderAccess]: ...

    @abstractmethod
    def update_service_provider_access_status(self, access_id: str, status: str) -> ServiceProviderAccess: ...

    @abstractmethod
    def get_service_provider_access_between(self, farmer_id: str, provider_id: str) -> List[ServiceProviderAccess]: ...

    @abstractmethod
    def get_service_provider_access_for_provider(self, provider_id: str) -> List[ServiceProviderAccess]: ...

    @abstractmethod
    def get_service_provider_access_for_farmer(self, farmer_id: str) -> List[ServiceProviderAccess]: ...

    # --- spatial / transactions ---
    @property
    def supports_spatial_queries(self) -> bool:
        return False

    def find_overlapping_fields(self, geometry: Dict[str, Any], exclude_field_id: Optional[str] = None) -> List[Field]:
        raise NotImplementedError("This store has no spatial query support")

    def lock_for_geometry_write(self) -> None:
        """Serialize overlap-validated writes where the store supports it."""

    def commit(self) -> None:
        """Commit the current unit of work."""

    def rollback(self) -> None:
        """Abandon the current unit of work."""


class SqlAlchemyFieldRepository(FieldRepository):
    def __init__(self, db: Session):
        self.db = db

    @property
    def dialect(self) -> str:
        return self.db.get_bind().dialect.name

    # --- users ---

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        return self.db.scalars(select(User).where(User.phone_number == phone_number)).first()

    def create_user(self, **values) -> User:
        user = User(**values)
        self.db.add(user)
        self.db.flush()
        return user

    # --- fields ---

    def get_field(self, field_id: str) -> Optional[Field]:
        return self.db.get(Field, field_id)

    def get_fields_by_user(self, user_id: str) -> List[Field]:
        query = select(Field).where(Field.user_id == user_id).order_by(Field.name)
        return list(self.db.scalars(query))

    def get_all_fields_except(self, user_id: str) -> List[Field]:
        query = select(Field).where(Field.user_id != user_id)
        return list(self.db.scalars(query))

    def iter_all_fields(self, batch_size: Optional[int] = None) -> Iterator[Field]:
        """Stream every field in id order, one page at a time."""
        batch_size = batch_size or settings.SCAN_BATCH_SIZE
        last_id = None
        while True:
            query = select(Field).order_by(Field.id).limit(batch_size)
            if last_id is not None:
                query = query.where(Field.id > last_id)
            page = list(self.db.scalars(query))
            if not page:
                return
            yield from page
            last_id = page[-1].id

    def create_field(self, data: Dict[str, Any]) -> Field:
        field = Field(**data)
        self.db.add(field)
        self.db.flush()
        return field

    def update_field(self, field_id: str, data: Dict[str, Any]) -> Field:
        field = self.get_field(field_id)
        if field is None:
            raise FieldNotFound(field_id)
        for key, value in data.items():
            setattr(field, key, value)
        self.db.flush()
        return field

    def delete_field(self, field_id: str) -> None:
        # Explicit deletes so relationship rows go even where FK cascades are off
        self.delete_adjacent_field_edges_for(field_id)
        self.db.execute(
            delete(FieldVisibilityPermission).where(
                or_(
                    FieldVisibilityPermission.owner_field_id == field_id,
                    FieldVisibilityPermission.viewer_field_id == field_id,
                )
            )
        )
        self.db.execute(delete(Field).where(Field.id == field_id))
        self.db.flush()

    # --- adjacency ---

    def create_adjacent_field_edge(
        self, field_id: str, adjacent_field_id: str, distance: float, shared_boundary_length: float
    ) -> AdjacentField:
        edge = AdjacentField(
            field_id=field_id,
            adjacent_field_id=adjacent_field_id,
            distance=distance,
            shared_boundary_length=shared_boundary_length,
        )
        self.db.add(edge)
        self.db.flush()
        return edge

    def delete_adjacent_field_edges_for(self, field_id: str) -> int:
        result = self.db.execute(
            delete(AdjacentField).where(
                or_(AdjacentField.field_id == field_id, AdjacentField.adjacent_field_id == field_id)
            )
        )
        self.db.flush()
        return result.rowcount or 0

    def get_adjacent_edges(self, field_id: str) -> List[AdjacentField]:
        query = select(AdjacentField).where(
            or_(AdjacentField.field_id == field_id, AdjacentField.adjacent_field_id == field_id)
        )
        return list(self.db.scalars(query))

    def get_adjacent_fields_with_distance(self, user_id: str) -> List[Tuple[Field, float]]:
        """
        Other users' fields adjacent to any of `user_id`'s fields, each once,
        paired with its shortest edge distance and ordered by it.
        """
        own_ids = select(Field.id).where(Field.user_id == user_id)
        edges = self.db.scalars(
            select(AdjacentField).where(
                or_(AdjacentField.field_id.in_(own_ids), AdjacentField.adjacent_field_id.in_(own_ids))
            )
        )
        own = set(self.db.scalars(own_ids))

        nearest: Dict[str, float] = {}
        for edge in edges:
            for other_id in (edge.field_id, edge.adjacent_field_id):
                if other_id in own:
                    continue
                if other_id not in nearest or edge.distance < nearest[other_id]:
                    nearest[other_id] = edge.distance

        if not nearest:
            return []
        fields = self.db.scalars(
            select(Field).where(Field.id.in_(list(nearest)), Field.user_id != user_id)
        )
        return sorted(((f, nearest[f.id]) for f in fields), key=lambda pair: pair[1])

    # --- visibility permissions ---

    def get_permission(self, permission_id: str) -> Optional[FieldVisibilityPermission]:
        return self.db.get(FieldVisibilityPermission, permission_id)

    def get_permission_for(self, owner_field_id: str, viewer_user_id: str) -> Optional[FieldVisibilityPermission]:
        query = select(FieldVisibilityPermission).where(
            FieldVisibilityPermission.owner_field_id == owner_field_id,
            FieldVisibilityPermission.viewer_user_id == viewer_user_id,
        )
        return self.db.scalars(query).first()

    def get_or_create_permission(self, **values) -> Tuple[FieldVisibilityPermission, bool]:
        existing = self.get_permission_for(values["owner_field_id"], values["viewer_user_id"])
        if existing is not None:
            return existing, False

        permission = FieldVisibilityPermission(**values)
        try:
            with self.db.begin_nested():
                self.db.add(permission)
                self.db.flush()
        except IntegrityError:
            # A concurrent request for the same pair won the insert
            existing = self.get_permission_for(values["owner_field_id"], values["viewer_user_id"])
            if existing is None:
                raise
            return existing, False
        return permission, True

    def update_permission_status(self, permission_id: str, status: str) -> FieldVisibilityPermission:
        permission = self.get_permission(permission_id)
        permission.status = status
        self.db.flush()
        return permission

    def get_permissions_for_viewer(self, viewer_user_id: str) -> List[FieldVisibilityPermission]:
        query = select(FieldVisibilityPermission).where(
            FieldVisibilityPermission.viewer_user_id == viewer_user_id
        )
        return list(self.db.scalars(query))

    def get_permissions_for_user(self, user_id: str) -> List[FieldVisibilityPermission]:
        query = select(FieldVisibilityPermission).where(
            or_(
                FieldVisibilityPermission.owner_user_id == user_id,
                FieldVisibilityPermission.viewer_user_id == user_id,
            )
        ).order_by(FieldVisibilityPermission.created_at.desc())
        return list(self.db.scalars(query))

    def get_pending_permissions_for_owner(self, owner_user_id: str) -> List[FieldVisibilityPermission]:
        query = select(FieldVisibilityPermission).where(
            FieldVisibilityPermission.owner_user_id == owner_user_id,
            FieldVisibilityPermission.status == "pending",
        ).order_by(FieldVisibilityPermission.created_at.desc())
        return list(self.db.scalars(query))

    # --- service providers ---

    def create_service_provider_access(self, data: Dict[str, Any]) -> ServiceProviderAccess:
        access = ServiceProviderAccess(**data)
        self.db.add(access)
        self.db.flush()
        return access

    def get_service_provider_access(self, access_id: str) -> Optional[ServiceProviderAccess]:
        return self.db.get(ServiceProviderAccess, access_id)

    def get_service_provider_access_between(self, farmer_id: str, provider_id: str) -> List[ServiceProviderAccess]:
        query = select(ServiceProviderAccess).where(
            ServiceProviderAccess.farmer_id == farmer_id,
            ServiceProviderAccess.service_provider_id == provider_id,
        )
        return list(self.db.scalars(query))

    def get_service_provider_access_for_provider(self, provider_id: str) -> List[ServiceProviderAccess]:
        query = select(ServiceProviderAccess).where(
            ServiceProviderAccess.service_provider_id == provider_id
        ).order_by(ServiceProviderAccess.created_at.desc())
        return list(self.db.scalars(query))

    def get_service_provider_access_for_farmer(self, farmer_id: str) -> List[ServiceProviderAccess]:
        query = select(ServiceProviderAccess).where(
            ServiceProviderAccess.farmer_id == farmer_id
        ).order_by(ServiceProviderAccess.created_at.desc())
        return list(self.db.scalars(query))

    def update_service_provider_access_status(self, access_id: str, status: str) -> ServiceProviderAccess:
        access = self.get_service_provider_access(access_id)
        access.status = status
        self.db.flush()
        return access

    # --- spatial / transactions ---

    @property
    def supports_spatial_queries(self) -> bool:
        return self.dialect == "postgresql"

    def find_overlapping_fields(self, geometry: Dict[str, Any], exclude_field_id: Optional[str] = None) -> List[Field]:
        """PostGIS overlap-or-containment query against every stored field."""
        if not self.supports_spatial_queries:
            raise NotImplementedError(f"Spatial queries are not available on {self.dialect}")

        candidate = geo_func.ST_SetSRID(
            geo_func.ST_GeomFromGeoJSON(json.dumps(unwrap_feature(geometry))), 4326
        )
        stored_geojson = func.coalesce(Field.geometry["geometry"], Field.geometry)
        existing = geo_func.ST_SetSRID(geo_func.ST_GeomFromGeoJSON(cast(stored_geojson, Text)), 4326)

        query = select(Field).where(
            Field.geometry.isnot(None),
            or_(
                geo_func.ST_Overlaps(existing, candidate),
                geo_func.ST_Within(existing, candidate),
                geo_func.ST_Within(candidate, existing),
            ),
        )
        if exclude_field_id:
            query = query.where(Field.id != exclude_field_id)
        return self.scalars_in_savepoint(query)

    def scalars_in_savepoint(self, query) -> list:
        """
        Run a read that may fail on bad stored data. A failure rolls back to
        the savepoint only, so the caller's transaction (and its advisory
        lock) stays usable.
        """
        with self.db.begin_nested():
            return list(self.db.scalars(query))

    def lock_for_geometry_write(self) -> None:
        if self.dialect == "postgresql":
            self.db.execute(select(func.pg_advisory_xact_lock(func.hashtext(GEOMETRY_WRITE_LOCK))))

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
