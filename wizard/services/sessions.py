from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from wizard.backends.base import DraftStore, PublishStore
from wizard.core.config import Settings
from wizard.core.ids import gen_id
from wizard.schemas.options import HIERARCHIES, TierLoader
from wizard.services.cascade import CascadeSelector
from wizard.services.draft_engine import DraftPersistenceEngine
from wizard.services.form_orchestrator import FormOrchestrator
from wizard.services.local_cache import LocalDraftCache
from wizard.services.option_store import TieredOptionStore


log = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str, int | None], FormOrchestrator]


def build_orchestrator(
    *,
    session_id: str,
    settings: Settings,
    loaders: Mapping[str, Mapping[str, TierLoader]],
    draft_store: DraftStore,
    publish_store: PublishStore,
    local_cache: LocalDraftCache,
    draft_id: int | None = None,
) -> FormOrchestrator:
    """Wire one wizard session: a selector per hierarchy plus its own engine."""
    selectors = {
        name: CascadeSelector(
            TieredOptionStore(HIERARCHIES[name], tier_loaders, cache_enabled=settings.option_cache_enabled)
        )
        for name, tier_loaders in loaders.items()
    }
    engine = DraftPersistenceEngine(
        draft_store=draft_store,
        publish_store=publish_store,
        local_cache=local_cache,
        cache_key=f"{settings.draft_cache_key}_{session_id}",
        draft_id=draft_id,
        debounce_seconds=settings.debounce_ms / 1000,
        status_display_seconds=settings.status_display_ms / 1000,
        free_plan_photo_limit=settings.free_plan_photo_limit,
        paid_plan_photo_limit=settings.paid_plan_photo_limit,
        max_photo_bytes=settings.max_photo_bytes,
    )
    return FormOrchestrator(engine, selectors)


class SessionRegistry:
    """
    Live wizard sessions of one app instance. Owned by the app (app.state),
    handed to endpoints through a dependency.

    Sessions untouched for `idle_ttl_seconds` are closed on the next
    `create`. At `max_sessions` the least recently used one is closed to
    make room.
    """

    def __init__(
        self,
        factory: OrchestratorFactory,
        *,
        max_sessions: int | None = None,
        idle_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._max_sessions = max_sessions
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, FormOrchestrator] = {}
        self._last_used: dict[str, float] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, *, session_id: str | None = None, draft_id: int | None = None) -> tuple[str, FormOrchestrator]:
        sid = session_id or gen_id("wzs")
        if sid in self._sessions:
            raise KeyError(f"Session already open: {sid}")

        await self.evict_idle()
        if self._max_sessions is not None:
            while len(self._sessions) >= self._max_sessions:
                oldest = min(self._last_used, key=self._last_used.__getitem__)
                log.info("session evicted id=%s reason=capacity", oldest)
                await self.close(oldest)

        orchestrator = self._factory(sid, draft_id)
        orchestrator.start()
        self._sessions[sid] = orchestrator
        self._last_used[sid] = self._clock()
        log.info("session opened id=%s draft_id=%s", sid, draft_id)
        return sid, orchestrator

    def get(self, session_id: str) -> FormOrchestrator:
        try:
            orchestrator = self._sessions[session_id]
        except KeyError:
            raise KeyError(f"Session not found: {session_id}") from None
        self._last_used[session_id] = self._clock()
        return orchestrator

    async def evict_idle(self) -> list[str]:
        if self._idle_ttl is None:
            return []
        cutoff = self._clock() - self._idle_ttl
        expired = [sid for sid, seen in self._last_used.items() if seen <= cutoff]
        for sid in expired:
            log.info("session evicted id=%s reason=idle", sid)
            await self.close(sid)
        return expired

    async def close(self, session_id: str) -> None:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            raise KeyError(f"Session not found: {session_id}")
        self._last_used.pop(session_id, None)
        await orchestrator.aclose()
        log.info("session closed id=%s", session_id)

    async def aclose(self) -> None:
        for sid in list(self._sessions):
            await self.close(sid)
