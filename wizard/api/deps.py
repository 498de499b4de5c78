from fastapi import Depends, HTTPException, Request

from wizard.services.form_orchestrator import FormOrchestrator
from wizard.services.sessions import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> FormOrchestrator:
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Session not found")
