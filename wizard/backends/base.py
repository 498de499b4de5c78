from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from wizard.schemas.form import Attachment


@dataclass(frozen=True)
class DraftSaveResult:
    draft_id: int | None  # remote id echoed or newly assigned, if the store returned one
    detail: dict[str, Any] | None = None


@runtime_checkable
class DraftStore(Protocol):
    """
    Remote draft upsert. Omitting draft_id creates a draft; passing it
    updates that draft in place. Raises RemoteSaveError.
    """

    async def upsert(
        self,
        *,
        payload: Mapping[str, Any],
        attachments: Sequence[Attachment],
        draft_id: int | None,
    ) -> DraftSaveResult:
        ...


@runtime_checkable
class PublishStore(Protocol):
    """Final listing submission. Raises PublishError with a user-facing message."""

    async def publish(
        self,
        *,
        payload: Mapping[str, Any],
        attachments: Sequence[Attachment],
    ) -> None:
        ...
