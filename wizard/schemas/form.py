from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


SaveStatus = Literal["idle", "saving", "saved", "error"]

# Fields that never go to the local cache (binary payloads).
BINARY_FIELDS = frozenset({"photo_files"})


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes = Field(repr=False)
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class FormRecord(BaseModel):
    """
    Full mutable field set of a listing. Instances are immutable snapshots;
    every edit produces a new one.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    property_category: str = "residential"
    listing_type: str = "sell"
    plan: str = "free"
    selected_plan: str = ""

    category_id: int = 0
    subcategory_id: int = 0
    config_type_id: int = 0

    residential_type: str = ""
    commercial_type: str = ""
    industrial_type: str = ""
    bhk: str = ""

    area: str = ""
    price: str = ""
    description: str = ""

    # location FKs; locality_id 0 means `locality` is free text
    country_id: int = 0
    state_id: int = 0
    city_id: int = 0
    locality_id: int = 0
    locality: str = ""

    society: str = ""
    pincode: str = ""

    photo_files: tuple[Attachment, ...] = ()

    virtual_tour: bool = False
    hide_number: bool = False
    owner_name: str = ""
    owner_phone: str = ""
    negotiable: bool = False
    urgent: bool = False
    loan_available: bool = False
    featured: bool = False
    bathrooms: int = 2
    balconies: int = 1
    furnishing: str = ""
    facing: str = ""
    age: str = ""
    amenities: tuple[str, ...] = ()
    deposit: str = ""
    maintenance: str = ""
    project_name: str = ""
    builder_name: str = ""
    rera: str = ""
    power_load: str = ""
    road_width: str = ""
    cabins: str = ""

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(cls.model_fields)

    def serializable(self) -> dict:
        """JSON-safe dump for the local cache (attachments excluded)."""
        return self.model_dump(mode="json", exclude=set(BINARY_FIELDS))


INITIAL_FORM = FormRecord()
