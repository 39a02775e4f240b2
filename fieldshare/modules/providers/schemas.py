from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Capability = Literal["view_fields", "view_adjacent_fields", "view_weather", "export_data"]


class ProviderAccessCreate(BaseModel):
    service_provider_id: str
    access_type: Literal["all_fields", "specific_fields"] = "all_fields"
    permissions: List[Capability] = Field(default_factory=lambda: ["view_fields"])
    season: Optional[str] = Field(None, pattern=r"^\d{4}$")
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    approve: bool = Field(False, description="Approve immediately instead of leaving the grant pending")


class ProviderAccessRequest(BaseModel):
    farmer_id: str
    access_type: Literal["all_fields", "specific_fields"] = "all_fields"
    permissions: Optional[List[Capability]] = None
    season: Optional[str] = Field(None, pattern=r"^\d{4}$")
    notes: Optional[str] = None


class ProviderAccessStatusUpdate(BaseModel):
    status: Literal["approved", "denied", "revoked"]


class ProviderAccessResponse(BaseModel):
    id: str
    farmer_id: str
    service_provider_id: str
    access_type: str
    status: str
    permissions: List[str]
    season: Optional[str] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
