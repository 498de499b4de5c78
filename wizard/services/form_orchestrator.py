from __future__ import annotations

from typing import Any, Mapping

from wizard.schemas.form import FormRecord
from wizard.services.cascade import CascadeSelector
from wizard.services.draft_engine import DraftPersistenceEngine


FIRST_STEP = 1
LAST_STEP = 5


class FormOrchestrator:
    """
    Single mutation entry point for the wizard steps.

    Plain fields go straight to the engine. Fields backed by a hierarchy
    (location and category ids, the locality text) only change through the
    selectors, and each selection is pushed to the engine as one `set_many`.
    """

    def __init__(self, engine: DraftPersistenceEngine, selectors: Mapping[str, CascadeSelector]):
        self.engine = engine
        self.selectors = dict(selectors)
        self.step = FIRST_STEP

        self._hierarchy_fields: dict[str, str] = {}
        for name, selector in self.selectors.items():
            h = selector.hierarchy
            for field in h.fields.values():
                self._hierarchy_fields[field] = name
            if h.text_field:
                self._hierarchy_fields[h.text_field] = name

    @property
    def record(self) -> FormRecord:
        return self.engine.record

    def selector(self, hierarchy: str) -> CascadeSelector:
        try:
            return self.selectors[hierarchy]
        except KeyError:
            raise KeyError(f"Unknown hierarchy {hierarchy!r}") from None

    def start(self) -> None:
        """Load root tiers and line the selectors up with the (restored) record."""
        for selector in self.selectors.values():
            selector.start()
        self.restore_from_record()

    def restore_from_record(self) -> None:
        record = self.engine.record
        for selector in self.selectors.values():
            h = selector.hierarchy
            ids = {tier: getattr(record, field) for tier, field in h.fields.items()}
            text = getattr(record, h.text_field) if h.text_field else ""
            selector.restore(ids, free_text=text)

    # -- mutations -----------------------------------------------------------

    def set(self, field: str, value: Any) -> FormRecord:
        return self.set_many({field: value})

    def set_many(self, patch: Mapping[str, Any]) -> FormRecord:
        owned = sorted(f for f in patch if f in self._hierarchy_fields)
        if owned:
            hierarchy = self._hierarchy_fields[owned[0]]
            raise ValueError(f"{owned[0]} is driven by the {hierarchy} selector; use select()")
        return self.engine.set_many(patch)

    def select(self, hierarchy: str, tier: str, option_id: int) -> FormRecord:
        selector = self.selector(hierarchy)
        selector.select_tier(tier, option_id)
        return self._push(selector)

    def select_leaf_text(self, hierarchy: str, text: str) -> FormRecord:
        selector = self.selector(hierarchy)
        selector.select_leaf_text(text)
        return self._push(selector)

    def select_leaf_option(self, hierarchy: str, option_id: int) -> FormRecord:
        selector = self.selector(hierarchy)
        selector.select_leaf_option(option_id)
        return self._push(selector)

    def _push(self, selector: CascadeSelector) -> FormRecord:
        h = selector.hierarchy
        patch: dict[str, Any] = {field: selector.selected_id(tier) for tier, field in h.fields.items()}
        if h.text_field:
            patch[h.text_field] = selector.free_text
        return self.engine.set_many(patch)

    # -- steps ---------------------------------------------------------------

    async def go_next(self) -> bool:
        """Advance one step; on the last step this publishes instead."""
        if self.step < LAST_STEP:
            self.step += 1
            return True
        return await self.engine.publish()

    def go_prev(self) -> None:
        if self.step > FIRST_STEP:
            self.step -= 1

    def jump_to(self, step: int) -> None:
        if not FIRST_STEP <= step <= LAST_STEP:
            raise ValueError(f"step must be between {FIRST_STEP} and {LAST_STEP}, got {step}")
        self.step = step

    def reset(self) -> None:
        self.engine.reset()
        for selector in self.selectors.values():
            selector.reset()
        self.step = FIRST_STEP

    # -- lifecycle -----------------------------------------------------------

    async def settle(self) -> None:
        for selector in self.selectors.values():
            await selector.settle()

    async def aclose(self) -> None:
        for selector in self.selectors.values():
            await selector.aclose()
        await self.engine.aclose()
