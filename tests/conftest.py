import asyncio

import httpx
import pytest

from wizard.api.deps import get_registry
from wizard.backends.base import DraftSaveResult
from wizard.core.config import Settings
from wizard.core.errors import FetchError, PublishError, RemoteSaveError
from wizard.main import app
from wizard.schemas.options import CATEGORY, LOCATION, OptionRecord
from wizard.services.cascade import CascadeSelector
from wizard.services.draft_engine import DraftPersistenceEngine
from wizard.services.local_cache import LocalDraftCache
from wizard.services.option_store import TieredOptionStore
from wizard.services.sessions import SessionRegistry, build_orchestrator


LOCATION_DATA = {
    "country": {None: [(1, "India"), (2, "UAE")]},
    "state": {1: [(5, "Haryana"), (6, "Punjab")], 2: [(7, "Dubai"), (8, "Abu Dhabi")]},
    "city": {5: [(22, "Gurugram"), (23, "Faridabad")], 7: [(30, "Dubai City")]},
    "locality": {22: [(101, "DLF Phase 1"), (102, "Sohna Road")]},
}

CATEGORY_DATA = {
    "category": {None: [(1, "Residential"), (2, "Commercial")]},
    "subcategory": {1: [(11, "Apartment"), (12, "Villa")]},
    "config_type": {11: [(111, "2 BHK"), (112, "3 BHK")]},
}

# shrunk debounce / display windows
DEBOUNCE = 0.05
DISPLAY = 0.1


class FakeOptionSource:
    """
    Scripted option service. `hold(tier, parent)` makes matching calls wait
    until the returned event is set; `fail(tier, parent)` makes them raise.
    """

    def __init__(self, data):
        self.data = data
        self.calls = []
        self._gates = {}
        self._failing = set()

    def hold(self, tier, parent):
        gate = asyncio.Event()
        self._gates[(tier, parent)] = gate
        return gate

    def fail(self, tier, parent):
        self._failing.add((tier, parent))

    def calls_for(self, tier):
        return [c for c in self.calls if c[0] == tier]

    def loaders(self, hierarchy):
        def make(tier):
            async def load(parent, lineage):
                self.calls.append((tier, parent, dict(lineage)))
                gate = self._gates.get((tier, parent))
                if gate is not None:
                    await gate.wait()
                if (tier, parent) in self._failing:
                    raise FetchError(f"{tier} options: HTTP 500", tier=tier, status_code=500)
                rows = self.data.get(tier, {}).get(parent, [])
                return [OptionRecord(id=i, name=n) for i, n in rows]

            return load

        return {t: make(t) for t in hierarchy.tiers}


class FakeDraftStore:
    def __init__(self, *, delay=0.0, first_id=100):
        self.calls = []
        self.delay = delay
        self.failures = 0
        self.return_ids = True
        self._next_id = first_id

    async def upsert(self, *, payload, attachments, draft_id):
        self.calls.append({"payload": dict(payload), "attachments": list(attachments), "draft_id": draft_id})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            self.failures -= 1
            raise RemoteSaveError("draft save failed: HTTP 500", status_code=500)
        if draft_id is None:
            draft_id = self._next_id
            self._next_id += 1
        return DraftSaveResult(draft_id=draft_id if self.return_ids else None)


class FakePublishStore:
    def __init__(self):
        self.calls = []
        self.error = None

    async def publish(self, *, payload, attachments):
        self.calls.append({"payload": dict(payload), "attachments": list(attachments)})
        if self.error:
            raise PublishError(self.error, status_code=400)


class StatusRecorder:
    def __init__(self, engine):
        self.seen = []
        engine.subscribe(self.seen.append)

    def count(self, status):
        return self.seen.count(status)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def location_source():
    return FakeOptionSource(LOCATION_DATA)


@pytest.fixture
def category_source():
    return FakeOptionSource(CATEGORY_DATA)


@pytest.fixture
async def location_selector(location_source):
    selector = CascadeSelector(TieredOptionStore(LOCATION, location_source.loaders(LOCATION)))
    yield selector
    await selector.aclose()


@pytest.fixture
async def category_selector(category_source):
    selector = CascadeSelector(TieredOptionStore(CATEGORY, category_source.loaders(CATEGORY)))
    yield selector
    await selector.aclose()


@pytest.fixture
def local_cache(tmp_path):
    return LocalDraftCache(tmp_path / "cache")


@pytest.fixture
def draft_store():
    return FakeDraftStore()


@pytest.fixture
def publish_store():
    return FakePublishStore()


@pytest.fixture
async def make_engine(draft_store, publish_store, local_cache):
    engines = []

    def _make(**kwargs):
        params = {
            "draft_store": draft_store,
            "publish_store": publish_store,
            "local_cache": local_cache,
            "cache_key": "draft_test",
            "debounce_seconds": DEBOUNCE,
            "status_display_seconds": DISPLAY,
        }
        params.update(kwargs)
        engine = DraftPersistenceEngine(**params)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        await engine.aclose()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        debounce_ms=int(DEBOUNCE * 1000),
        status_display_ms=int(DISPLAY * 1000),
        local_cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
async def registry(test_settings, location_source, category_source, draft_store, publish_store):
    cache = LocalDraftCache(test_settings.local_cache_dir)
    loaders = {
        "location": location_source.loaders(LOCATION),
        "category": category_source.loaders(CATEGORY),
    }

    def factory(session_id, draft_id):
        return build_orchestrator(
            session_id=session_id,
            settings=test_settings,
            loaders=loaders,
            draft_store=draft_store,
            publish_store=publish_store,
            local_cache=cache,
            draft_id=draft_id,
        )

    reg = SessionRegistry(factory)
    yield reg
    await reg.aclose()


@pytest.fixture
async def client(registry):
    """
    HTTP client bound to the test registry via dependency override.
    """
    app.dependency_overrides[get_registry] = lambda: registry

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
