from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from wizard.schemas.form import Attachment, FormRecord
from wizard.services.http_client import MultipartFile


# FormRecord field -> backend payload key, for optional text fields
_OPTIONAL_TEXT = {
    "residential_type": "residentialType",
    "commercial_type": "commercialType",
    "industrial_type": "industrialType",
    "bhk": "bhk",
    "area": "area",
    "price": "price",
    "description": "description",
    "locality": "locality",
    "society": "society",
    "pincode": "pincode",
    "owner_name": "ownerName",
    "owner_phone": "ownerPhone",
    "furnishing": "furnishing",
    "facing": "facing",
    "age": "age",
    "deposit": "deposit",
    "maintenance": "maintenance",
    "project_name": "projectName",
    "builder_name": "builderName",
    "rera": "rera",
    "power_load": "powerLoad",
    "road_width": "roadWidth",
    "cabins": "cabins",
}

# numeric FKs; 0 means unset and is never sent
_OPTIONAL_IDS = ("country_id", "state_id", "city_id", "category_id", "subcategory_id", "config_type_id")

_ALWAYS = {
    "virtual_tour": "virtualTour",
    "hide_number": "hideNumber",
    "negotiable": "negotiable",
    "urgent": "urgent",
    "loan_available": "loanAvailable",
    "featured": "featured",
    "bathrooms": "bathrooms",
    "balconies": "balconies",
}


def to_payload(record: FormRecord) -> dict[str, Any]:
    """Project a FormRecord onto the backend's listing payload."""
    out: dict[str, Any] = {
        "propertyCategory": record.property_category,
        "listingType": record.listing_type,
    }
    plan = record.selected_plan or record.plan
    if plan:
        out["plan"] = plan

    for field in _OPTIONAL_IDS:
        value = getattr(record, field)
        if value:
            out[field] = value

    for field, key in _OPTIONAL_TEXT.items():
        value = getattr(record, field)
        if value:
            out[key] = value

    for field, key in _ALWAYS.items():
        out[key] = getattr(record, field)

    if record.amenities:
        out["amenities"] = list(record.amenities)
    return out


def to_form_fields(payload: Mapping[str, Any]) -> dict[str, str]:
    """
    Multipart has no native types: booleans become "true"/"false",
    amenities a JSON string, empty values are dropped.
    """
    fields: dict[str, str] = {}
    for key, value in payload.items():
        if key == "amenities" or value is None or value == "":
            continue
        if isinstance(value, bool):
            fields[key] = "true" if value else "false"
        else:
            fields[key] = str(value)

    amenities = payload.get("amenities")
    if amenities:
        fields["amenities"] = json.dumps(list(amenities))
    return fields


def to_multipart_files(attachments: Sequence[Attachment]) -> list[MultipartFile]:
    return [("photos", (a.filename, a.content, a.content_type)) for a in attachments]
