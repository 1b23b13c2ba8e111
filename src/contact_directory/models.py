from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, model_validator

from .normalization import manual_object_id

ContactPointType = Literal["mobile", "office", "email", "linkedin", "desk-extension"]
EntitySource = Literal["Office365", "Merged", "Manual", "App.jsx", "ArtifactCode.jsx"]
LocationId = Literal["PLY", "FTL"]

EXPORTABLE_SOURCES = ("Office365", "Merged")


class ContactPoint(BaseModel):
    type: ContactPointType
    value: str = Field(min_length=1)
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Role(BaseModel):
    brand: str = Field(min_length=1)
    office: str = Field(min_length=1)
    priority: int = Field(ge=1)
    title: Optional[str] = None

    def matches(self, brand: str, office: str) -> bool:
        return self.brand.lower() == brand.lower() and self.office.upper() == office.upper()

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Desk(BaseModel):
    type: Literal["desk-extension"]
    value: str


class Room(BaseModel):
    id: str
    desks: List[Desk]


class Location(BaseModel):
    id: LocationId
    name: str
    rooms: Optional[List[Room]] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ContactBase(BaseModel):
    # curated keys the schema does not model survive a load/write cycle
    model_config = ConfigDict(extra="allow")

    kind: str
    id: str = Field(min_length=1)
    objectId: Optional[str] = None
    displayName: Optional[str] = None
    title: Optional[str] = None
    contactPoints: List[ContactPoint] = Field(default_factory=list)
    roles: List[Role] = Field(default_factory=list)
    source: EntitySource
    department: Optional[str] = None
    upn: Optional[EmailStr] = None

    def first_point(self, point_type: str) -> Optional[ContactPoint]:
        return next((point for point in self.contactPoints if point.type == point_type), None)

    def primary_role(self) -> Optional[Role]:
        """Lowest ``priority`` wins; ties keep list order."""
        if not self.roles:
            return None
        return min(self.roles, key=lambda role: role.priority)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def replace(self, **changes: Any) -> "ContactBase":
        return self.model_copy(update=changes)


class ExternalContact(ContactBase):
    """Employee synced from the HR/identity CSV, keyed by ``objectId``."""

    kind: Literal["external"]
    objectId: str = Field(min_length=1)


class InternalContact(ContactBase):
    """Manually curated resource (room, shared line) that never comes from the CSV."""

    kind: Literal["internal"]
    objectId: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _default_object_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("objectId"):
            data = dict(data)
            data["objectId"] = manual_object_id(data.get("id") or data.get("displayName"))
        return data


ContactEntity = Annotated[Union[ExternalContact, InternalContact], Field(discriminator="kind")]

ENTITY_ADAPTER: TypeAdapter = TypeAdapter(ContactEntity)


class CanonicalMeta(BaseModel):
    generatedFrom: List[str]
    generatedAt: str
    version: Literal[1]
    hash: Optional[str] = None


class CanonicalExport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ContactEntities: List[ContactEntity]
    Locations: List[Location]
    meta: CanonicalMeta = Field(alias="_meta")

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "CanonicalExport":
        return cls.model_validate(payload)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def replace(self, **changes: Any) -> "CanonicalExport":
        return self.model_copy(update=changes)


def entity_from_mapping(payload: Dict[str, Any]) -> Union[ExternalContact, InternalContact]:
    return ENTITY_ADAPTER.validate_python(payload)


def ensure_entity(obj: Any) -> Union[ExternalContact, InternalContact]:
    if isinstance(obj, ContactBase):
        return obj  # type: ignore[return-value]
    if isinstance(obj, dict):
        return entity_from_mapping(obj)
    raise TypeError(f"Unsupported contact payload type: {type(obj)!r}")
