from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, ValidationError

from fieldshare.core.exceptions import GeometryError
from fieldshare.core.geometry import parse_geometry

# --- 1. GeoJSON Sub-Models ---

Position = List[float]


class GeoJSONPolygon(BaseModel):
    """
    Standard GeoJSON Polygon structure.
    Example:
    {
        "type": "Polygon",
        "coordinates": [
            [[-93.61, 42.02], [-93.60, 42.02], [-93.60, 42.03], [-93.61, 42.03], [-93.61, 42.02]]
        ]
    }
    """
    type: Literal["Polygon"]
    # Level 1: the rings (outer boundary, then holes)
    # Level 2: the positions of one ring
    # Level 3: [longitude, latitude]
    coordinates: List[List[Position]]


class GeoJSONMultiPolygon(BaseModel):
    type: Literal["MultiPolygon"]
    coordinates: List[List[List[Position]]]


FieldGeometry = Annotated[Union[GeoJSONPolygon, GeoJSONMultiPolygon], Field(discriminator="type")]


class GeoJSONFeature(BaseModel):
    type: Literal["Feature"]
    geometry: FieldGeometry
    properties: Optional[Dict[str, Any]] = None


_boundary_adapter = TypeAdapter(
    Annotated[Union[GeoJSONPolygon, GeoJSONMultiPolygon, GeoJSONFeature], Field(discriminator="type")]
)


def validate_boundary(value: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shape-check a submitted boundary and return it untouched, so the stored
    document is exactly what the client drew. Point, LineString and other
    types are rejected here rather than at render time.
    """
    try:
        _boundary_adapter.validate_python(value)
    except ValidationError:
        geom_type = value.get("type") if isinstance(value, dict) else type(value).__name__
        if isinstance(value, dict) and geom_type == "Feature":
            geom_type = (value.get("geometry") or {}).get("type")
        raise ValueError(
            f"Boundary must be a GeoJSON Polygon or MultiPolygon (or a Feature of one), got '{geom_type}'"
        )
    try:
        parse_geometry(value)
    except GeometryError as e:
        raise ValueError(e.message)
    return value


SprayType = Literal["enlist", "liberty", "roundup", "dicamba", "conventional", "organic"]
FieldStatus = Literal["planted", "growing", "harvested", "fallow"]


# --- 2. API Models ---

class FieldCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, examples=["North River Field"])
    geometry: Dict[str, Any]
    crop: str = Field(..., examples=["corn"])
    spray_types: List[SprayType] = Field(default_factory=list)
    variety: Optional[str] = None
    season: str = Field(..., pattern=r"^\d{4}$", examples=["2025"])
    status: FieldStatus = "planted"
    acres: float = Field(0, ge=0)
    notes: Optional[str] = None

    @field_validator("geometry")
    @classmethod
    def check_geometry(cls, v):
        return validate_boundary(v)


class FieldUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    geometry: Optional[Dict[str, Any]] = None
    crop: Optional[str] = None
    spray_types: Optional[List[SprayType]] = None
    variety: Optional[str] = None
    season: Optional[str] = Field(None, pattern=r"^\d{4}$")
    status: Optional[FieldStatus] = None
    acres: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("geometry")
    @classmethod
    def check_geometry(cls, v):
        return validate_boundary(v) if v is not None else v

    @field_validator("name", "crop", "spray_types", "season", "acres")
    @classmethod
    def reject_null(cls, v):
        # Omit an attribute to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v


class OverlapCheckRequest(BaseModel):
    geometry: Dict[str, Any]
    exclude_field_id: Optional[str] = None

    @field_validator("geometry")
    @classmethod
    def check_geometry(cls, v):
        return validate_boundary(v)


class OverlapShare(BaseModel):
    field_id: str
    name: str
    overlap_percentage: Optional[float] = Field(None, description="Percent of the candidate boundary inside this field")


class OverlapCheckResponse(BaseModel):
    has_overlap: bool
    overlapping_fields: List[str]
    overlaps: List[OverlapShare] = Field(default_factory=list)


# --- 3. Access-scoped field views ---

RESTRICTED_FIELD_NAME = "Private Field"
RESTRICTED_CROP = "Unknown"


class _FieldDetails(BaseModel):
    id: str
    user_id: str
    name: str
    geometry: Optional[Dict[str, Any]] = None
    crop: str
    spray_types: List[str] = Field(default_factory=list)
    variety: Optional[str] = None
    season: str
    status: Optional[str] = None
    acres: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OwnerFieldView(_FieldDetails):
    """The caller's own field, unmodified."""
    access_level: Literal["owner"] = "owner"
    notes: Optional[str] = None


class ApprovedFieldView(_FieldDetails):
    """A neighbor's field the caller was granted: everything but private notes."""
    access_level: Literal["approved"] = "approved"
    notes: None = None


class RestrictedFieldView(BaseModel):
    """
    A neighbor's field without a grant. Only the boundary survives so the
    map can draw it; every agricultural attribute is blank by type.
    """
    access_level: Literal["restricted"] = "restricted"
    id: str
    name: Literal["Private Field"] = RESTRICTED_FIELD_NAME
    crop: Literal["Unknown"] = RESTRICTED_CROP
    geometry: Optional[Dict[str, Any]] = None
    spray_types: List[str] = Field(default_factory=list, max_length=0)
    variety: None = None
    season: None = None
    status: None = None
    acres: None = None
    notes: None = None


FieldView = Annotated[
    Union[OwnerFieldView, ApprovedFieldView, RestrictedFieldView],
    Field(discriminator="access_level"),
]


class NearbyFieldResponse(BaseModel):
    field: FieldView
    distance_m: float


class AdjacentEdgeResponse(BaseModel):
    field_id: str
    adjacent_field_id: str
    distance: float
    shared_boundary_length: float

    class Config:
        from_attributes = True
