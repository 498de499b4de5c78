from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from wizard.backends.base import DraftSaveResult
from wizard.core.errors import DEFAULT_PUBLISH_ERROR, PublishError, RemoteSaveError
from wizard.schemas.form import Attachment
from wizard.services.http_client import ApiHttpClient
from wizard.services.payload import to_form_fields, to_multipart_files


log = logging.getLogger(__name__)


def extract_draft_id(detail: Mapping[str, Any]) -> int | None:
    # the backend answers either {id: ...} or {data: {id: ...}}
    raw = detail.get("id")
    if raw is None and isinstance(detail.get("data"), dict):
        raw = detail["data"].get("id")
    try:
        value = int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
    return value if value and value > 0 else None

def extract_error_message(detail: Mapping[str, Any], *, fallback: str = DEFAULT_PUBLISH_ERROR) -> str:
    raw = detail.get("message")
    if isinstance(raw, str) and raw.strip():
        return raw
    if isinstance(raw, list) and raw:
        return " ".join(str(m) for m in raw)
    return fallback

class PropertyApi:
    """
    Draft upsert (PUT /properties/draft) and publish (POST /properties).
    Implements both DraftStore and PublishStore.
    """

    def __init__(self, http: ApiHttpClient):
        self._http = http

    async def upsert(
        self,
        *,
        payload: Mapping[str, Any],
        attachments: Sequence[Attachment],
        draft_id: int | None,
    ) -> DraftSaveResult:
        body = dict(payload)
        if draft_id is not None:
            body["draftId"] = draft_id

        res = await self._http.put_multipart(
            url="/properties/draft",
            form=to_form_fields(body),
            files=to_multipart_files(attachments),
        )
        if not res.ok:
            raise RemoteSaveError(
                f"draft save failed: {res.error_message or res.error_code}",
                status_code=res.status_code,
            )

        saved_id = extract_draft_id(res.detail)
        log.debug("draft upsert ok draft_id=%s elapsed_ms=%s", saved_id, res.elapsed_ms)
        return DraftSaveResult(draft_id=saved_id, detail=res.detail)

    async def publish(
        self,
        *,
        payload: Mapping[str, Any],
        attachments: Sequence[Attachment],
    ) -> None:
        res = await self._http.post_multipart(
            url="/properties",
            form=to_form_fields(payload),
            files=to_multipart_files(attachments),
        )
        if not res.ok:
            log.info("publish rejected status=%s code=%s", res.status_code, res.error_code)
            raise PublishError(extract_error_message(res.detail), status_code=res.status_code)
