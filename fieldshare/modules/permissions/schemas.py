from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel


class AccessRequestCreate(BaseModel):
    owner_field_id: str
    # The requester's own field that made the neighbor show up, if any
    viewer_field_id: Optional[str] = None


class AccessDecision(BaseModel):
    decision: Literal["approved", "denied"]


class PermissionResponse(BaseModel):
    id: str
    owner_field_id: str
    owner_user_id: str
    viewer_user_id: str
    viewer_field_id: Optional[str] = None
    status: str
    grant_source: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PendingRequestResponse(BaseModel):
    permission: PermissionResponse
    field_name: Optional[str] = None
    viewer_name: Optional[str] = None


class OwnerSummary(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AdjacentFieldNeedingPermission(BaseModel):
    """A neighbor's field as listed before access: who owns it and how far away."""
    id: str
    owner: OwnerSummary
    distance: float
    permission_status: Optional[str] = None


class AdjacentFieldsNeedingPermissionResponse(BaseModel):
    fields: List[AdjacentFieldNeedingPermission]
