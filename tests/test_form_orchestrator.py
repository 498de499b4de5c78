import pytest

from conftest import wait_until
from wizard.services.form_orchestrator import LAST_STEP, FormOrchestrator


@pytest.fixture
async def orchestrator(make_engine, location_selector, category_selector):
    orch = FormOrchestrator(make_engine(), {"location": location_selector, "category": category_selector})
    orch.start()
    await orch.settle()
    return orch


@pytest.mark.asyncio
async def test_selection_pushes_hierarchy_fields_in_one_save(orchestrator, draft_store):
    orch = orchestrator
    orch.select("location", "country", 1)
    await orch.settle()
    orch.select("location", "state", 5)
    await orch.settle()
    orch.select("location", "city", 22)
    await orch.settle()
    orch.select_leaf_option("location", 101)

    record = orch.record
    assert (record.country_id, record.state_id, record.city_id, record.locality_id) == (1, 5, 22, 101)
    assert record.locality == "DLF Phase 1"

    orch.select("location", "country", 2)
    record = orch.record
    assert (record.country_id, record.state_id, record.city_id, record.locality_id) == (2, 0, 0, 0)
    assert record.locality == ""

    await wait_until(lambda: orch.engine.status == "saved")
    assert len(draft_store.calls) == 1
    assert draft_store.calls[0]["payload"]["country_id"] == 2
    assert "state_id" not in draft_store.calls[0]["payload"]


@pytest.mark.asyncio
async def test_leaf_text_goes_to_locality_field(orchestrator):
    orch = orchestrator
    orch.select("location", "country", 1)
    orch.select_leaf_text("location", "Near the old fort")

    assert orch.record.locality == "Near the old fort"
    assert orch.record.locality_id == 0


@pytest.mark.asyncio
async def test_hierarchy_fields_cannot_be_set_directly(orchestrator):
    with pytest.raises(ValueError):
        orchestrator.set("city_id", 22)
    with pytest.raises(ValueError):
        orchestrator.set_many({"price": "1", "category_id": 1})
    assert orchestrator.record.price == ""

    orchestrator.set("price", "1")
    assert orchestrator.record.price == "1"


@pytest.mark.asyncio
async def test_start_restores_selectors_from_cached_record(make_engine, local_cache, location_selector, category_selector):
    local_cache.put("draft_test", {"country_id": 1, "state_id": 5, "city_id": 22, "locality": "Sector 56", "category_id": 1})
    orch = FormOrchestrator(make_engine(), {"location": location_selector, "category": category_selector})

    orch.start()
    await orch.settle()

    loc = orch.selector("location")
    assert loc.selections() == {"country": 1, "state": 5, "city": 22, "locality": 0}
    assert loc.free_text == "Sector 56"
    assert [o.name for o in loc.state("locality").options] == ["DLF Phase 1", "Sohna Road"]
    assert [o.name for o in orch.selector("category").state("subcategory").options] == ["Apartment", "Villa"]


@pytest.mark.asyncio
async def test_steps_and_publish_on_last_step(orchestrator, publish_store):
    orch = orchestrator
    orch.go_prev()
    assert orch.step == 1

    for _ in range(LAST_STEP - 1):
        assert await orch.go_next() is True
    assert orch.step == LAST_STEP
    assert publish_store.calls == []

    assert await orch.go_next() is True
    assert len(publish_store.calls) == 1
    assert orch.engine.submitted is True

    orch.jump_to(2)
    assert orch.step == 2
    with pytest.raises(ValueError):
        orch.jump_to(6)


@pytest.mark.asyncio
async def test_reset_clears_record_selectors_and_step(orchestrator):
    orch = orchestrator
    orch.select("location", "country", 1)
    orch.set("price", "9")
    orch.jump_to(3)

    orch.reset()

    assert orch.step == 1
    assert orch.record.price == ""
    assert orch.selector("location").selected_id("country") == 0
    assert orch.engine.save_pending is False
