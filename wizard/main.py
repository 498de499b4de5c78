import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from wizard.api.v1.router import router as v1_router
from wizard.backends.categories import CategoryApi
from wizard.backends.locations import LocationApi
from wizard.backends.properties import PropertyApi
from wizard.core.config import settings
from wizard.core.telemetry import setup_telemetry
from wizard.services.http_client import ApiHttpClient
from wizard.services.local_cache import LocalDraftCache
from wizard.services.sessions import SessionRegistry, build_orchestrator


log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    http = ApiHttpClient(
        base_url=settings.api_base_url,
        token=settings.api_token.get_secret_value() if settings.api_token else None,
        timeout_seconds=settings.http_timeout_seconds,
    )
    cache = LocalDraftCache(settings.local_cache_dir, max_bytes=settings.local_cache_max_bytes)
    properties = PropertyApi(http)
    loaders = {
        "location": LocationApi(http).loaders(),
        "category": CategoryApi(http).loaders(),
    }

    def factory(session_id: str, draft_id: int | None):
        return build_orchestrator(
            session_id=session_id,
            settings=settings,
            loaders=loaders,
            draft_store=properties,
            publish_store=properties,
            local_cache=cache,
            draft_id=draft_id,
        )

    app.state.sessions = SessionRegistry(
        factory,
        max_sessions=settings.max_sessions,
        idle_ttl_seconds=settings.session_idle_ttl_seconds,
    )
    log.info("wizard: backend=%s cache_dir=%s", settings.api_base_url, settings.local_cache_dir)
    try:
        yield
    finally:
        await app.state.sessions.aclose()
        await http.aclose()


app = FastAPI(title="Listing Wizard API", version="0.1.0", lifespan=lifespan)

setup_telemetry(app)
app.include_router(v1_router)
