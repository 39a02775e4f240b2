"""
SQLAlchemy models for fields, adjacency edges and visibility grants.
Geometry is kept as the submitted GeoJSON document (JSONB on PostgreSQL)
so it is returned to clients exactly as it was drawn.
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

GeoJSONType = JSON().with_variant(JSONB(), "postgresql")

FIELD_STATUSES = ("planted", "growing", "harvested", "fallow")
SPRAY_TYPES = ("enlist", "liberty", "roundup", "dicamba", "conventional", "organic")
USER_ROLES = ("farmer", "service_provider")

PERMISSION_STATUSES = ("pending", "approved", "denied", "revoked", "auto_granted")
GRANT_SOURCES = ("manual", "auto_on_signup", "system")

PROVIDER_ACCESS_TYPES = ("all_fields", "specific_fields")
PROVIDER_ACCESS_STATUSES = ("pending", "approved", "denied", "revoked")
PROVIDER_CAPABILITIES = ("view_fields", "view_adjacent_fields", "view_weather", "export_data")


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(20), nullable=True)
    user_role = Column(String(20), nullable=False, default="farmer")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    fields = relationship("Field", back_populates="owner", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or "A neighboring farmer"

    def __repr__(self):
        return f"<User(id={self.id}, role={self.user_role})>"


class Field(Base):
    """A farmed parcel with its GeoJSON boundary and crop details."""
    __tablename__ = "fields"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Polygon / MultiPolygon, optionally wrapped in a Feature
    geometry = Column(GeoJSONType, nullable=True)

    crop = Column(String(100), nullable=False)
    spray_types = Column(JSON, nullable=False, default=list)
    variety = Column(String(200), nullable=True)
    season = Column(String(10), nullable=False)
    status = Column(String(20), nullable=True, default="planted")
    acres = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", back_populates="fields")

    def __repr__(self):
        return f"<Field(id={self.id}, name={self.name})>"


class AdjacentField(Base):
    """
    Computed proximity edge. Stored once per pair from the anchor's side
    and read in both directions.
    """
    __tablename__ = "adjacent_fields"

    id = Column(String(36), primary_key=True, default=_uuid)
    field_id = Column(String(36), ForeignKey("fields.id", ondelete="CASCADE"), nullable=False, index=True)
    adjacent_field_id = Column(String(36), ForeignKey("fields.id", ondelete="CASCADE"), nullable=False, index=True)

    distance = Column(Float, nullable=False)  # meters, centroid to centroid
    shared_boundary_length = Column(Float, nullable=False, default=0.0)  # meters

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AdjacentField({self.field_id} <-> {self.adjacent_field_id}, {self.distance:.1f} m)>"


class FieldVisibilityPermission(Base):
    """A viewer's request for (and the owner's decision on) one field."""
    __tablename__ = "field_visibility_permissions"
    __table_args__ = (
        UniqueConstraint("owner_field_id", "viewer_user_id", name="uq_permission_field_viewer"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_field_id = Column(String(36), ForeignKey("fields.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    viewer_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    viewer_field_id = Column(String(36), ForeignKey("fields.id", ondelete="CASCADE"), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    grant_source = Column(String(20), nullable=False, default="manual")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<FieldVisibilityPermission(id={self.id}, status={self.status})>"


class ServiceProviderAccess(Base):
    """Farmer-to-provider grant covering the farmer's fields."""
    __tablename__ = "service_provider_access"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_provider_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    access_type = Column(String(20), nullable=False, default="all_fields")
    status = Column(String(20), nullable=False, default="pending")
    permissions = Column(JSON, nullable=False, default=list)
    season = Column(String(10), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """Approved and not past its expiry; expiry needs no explicit revoke."""
        if self.status != "approved":
            return False
        now = now or datetime.utcnow()
        return self.expires_at is None or self.expires_at >= now

    def __repr__(self):
        return f"<ServiceProviderAccess(id={self.id}, status={self.status})>"


Index("ix_adjacent_fields_pair", AdjacentField.field_id, AdjacentField.adjacent_field_id)
Index("ix_provider_access_pair", ServiceProviderAccess.farmer_id, ServiceProviderAccess.service_provider_id)
