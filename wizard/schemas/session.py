from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from wizard.schemas.form import SaveStatus
from wizard.schemas.options import OptionRecord


class SessionCreate(BaseModel):
    session_id: str | None = Field(default=None, min_length=1, max_length=120)
    draft_id: int | None = Field(default=None, gt=0)


class FieldsPatch(BaseModel):
    fields: dict[str, Any] = Field(default_factory=dict)


class TierSelect(BaseModel):
    id: int | None = Field(default=None, ge=0)
    text: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _exactly_one(self):
        if (self.id is None) == (self.text is None):
            raise ValueError("send exactly one of 'id' or 'text'")
        return self


class TierStateOut(BaseModel):
    tier: str
    selected_id: int
    options: list[OptionRecord]
    loading: bool
    free_text: str | None = None


class PhotoOut(BaseModel):
    filename: str
    content_type: str
    size: int


class SessionOut(BaseModel):
    id: str
    step: int
    save_status: SaveStatus
    draft_id: int | None
    record: dict[str, Any]
    photos: list[PhotoOut]
    tiers: dict[str, list[TierStateOut]]
    submitting: bool
    submitted: bool
    submit_error: str | None


class SaveOut(BaseModel):
    ok: bool
    save_status: SaveStatus
    draft_id: int | None


class PublishOut(BaseModel):
    ok: bool
