from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from wizard.api.deps import get_registry, get_session
from wizard.core.errors import PhotoLimitError, UnknownFieldError
from wizard.schemas.form import Attachment
from wizard.schemas.session import (
    FieldsPatch,
    PhotoOut,
    PublishOut,
    SaveOut,
    SessionCreate,
    SessionOut,
    TierSelect,
    TierStateOut,
)
from wizard.services.form_orchestrator import FormOrchestrator
from wizard.services.sessions import SessionRegistry

router = APIRouter()


def _session_out(session_id: str, orch: FormOrchestrator) -> SessionOut:
    engine = orch.engine
    return SessionOut(
        id=session_id,
        step=orch.step,
        save_status=engine.status,
        draft_id=engine.draft_id,
        record=engine.record.serializable(),
        photos=[
            PhotoOut(filename=p.filename, content_type=p.content_type, size=p.size)
            for p in engine.record.photo_files
        ],
        tiers={
            name: [
                TierStateOut(
                    tier=s.tier,
                    selected_id=s.selected_id,
                    options=list(s.options),
                    loading=s.loading,
                    free_text=s.free_text,
                )
                for s in selector.states()
            ]
            for name, selector in orch.selectors.items()
        },
        submitting=engine.submitting,
        submitted=engine.submitted,
        submit_error=engine.submit_error,
    )


@router.post("/sessions", response_model=SessionOut)
async def create_session(body: SessionCreate, registry: SessionRegistry = Depends(get_registry)):
    try:
        sid, orch = await registry.create(session_id=body.session_id, draft_id=body.draft_id)
    except KeyError:
        raise HTTPException(status_code=409, detail="Session already open")
    return _session_out(sid, orch)


@router.get("/sessions/{session_id}", response_model=SessionOut)
async def read_session(session_id: str, orch: FormOrchestrator = Depends(get_session)):
    return _session_out(session_id, orch)


@router.patch("/sessions/{session_id}/fields", response_model=SessionOut)
async def patch_fields(session_id: str, body: FieldsPatch, orch: FormOrchestrator = Depends(get_session)):
    try:
        orch.set_many(body.fields)
    except UnknownFieldError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        # includes pydantic ValidationError
        raise HTTPException(status_code=422, detail=str(e))
    return _session_out(session_id, orch)


@router.post("/sessions/{session_id}/tiers/{hierarchy}/{tier}", response_model=SessionOut)
async def select_tier(
    session_id: str,
    hierarchy: str,
    tier: str,
    body: TierSelect,
    orch: FormOrchestrator = Depends(get_session),
):
    try:
        selector = orch.selector(hierarchy)
        selector.hierarchy.index(tier)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))

    try:
        if body.text is not None:
            if tier != selector.hierarchy.leaf:
                raise ValueError(f"free text is only accepted on the {selector.hierarchy.leaf} tier")
            orch.select_leaf_text(hierarchy, body.text)
        else:
            orch.select(hierarchy, tier, body.id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _session_out(session_id, orch)


@router.post("/sessions/{session_id}/photos", response_model=SessionOut)
async def upload_photos(
    session_id: str,
    photos: list[UploadFile] = File(...),
    orch: FormOrchestrator = Depends(get_session),
):
    files = [
        Attachment(
            filename=p.filename or "photo",
            content=await p.read(),
            content_type=p.content_type or "application/octet-stream",
        )
        for p in photos
    ]
    try:
        orch.engine.add_photos(files)
    except PhotoLimitError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _session_out(session_id, orch)


@router.delete("/sessions/{session_id}/photos/{index}", response_model=SessionOut)
async def delete_photo(session_id: str, index: int, orch: FormOrchestrator = Depends(get_session)):
    if not 0 <= index < len(orch.record.photo_files):
        raise HTTPException(status_code=404, detail="Photo not found")
    orch.engine.remove_photo(index)
    return _session_out(session_id, orch)


@router.post("/sessions/{session_id}/save", response_model=SaveOut)
async def save_session(session_id: str, orch: FormOrchestrator = Depends(get_session)):
    ok = await orch.engine.manual_save()
    return SaveOut(ok=ok, save_status=orch.engine.status, draft_id=orch.engine.draft_id)


@router.post("/sessions/{session_id}/publish", response_model=PublishOut)
async def publish_session(session_id: str, orch: FormOrchestrator = Depends(get_session)):
    ok = await orch.engine.publish()
    if not ok:
        raise HTTPException(status_code=422, detail=orch.engine.submit_error)
    return PublishOut(ok=True)


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    try:
        await registry.close(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"id": session_id, "closed": True}
