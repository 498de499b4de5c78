from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Mapping

from wizard.schemas.options import UNSET, TierState
from wizard.services.option_store import TieredOptionStore


log = logging.getLogger(__name__)


class CascadeSelector:
    """
    Selected id per tier of one hierarchy, plus the leaf's free text.

    Invariant: a tier never holds a selection while one of its ancestors is
    unset, and its option list is empty in that case. Option fetches run as
    background tasks on the running loop; `settle()` waits for them.
    """

    def __init__(self, store: TieredOptionStore):
        self.store = store
        self.hierarchy = store.hierarchy
        self._selected: dict[str, int] = {t: UNSET for t in self.hierarchy.tiers}
        self._free_text = ""
        self._tasks: set[asyncio.Task] = set()

    # -- reads ---------------------------------------------------------------

    def selected_id(self, tier: str) -> int:
        return self._selected[tier]

    @property
    def free_text(self) -> str:
        return self._free_text

    def selections(self) -> dict[str, int]:
        return dict(self._selected)

    def lineage(self, tier: str) -> dict[str, int]:
        return {t: self._selected[t] for t in self.hierarchy.ancestors(tier)}

    def state(self, tier: str) -> TierState:
        return TierState(
            tier=tier,
            selected_id=self._selected[tier],
            options=self.store.options(tier),
            loading=self.store.loading(tier),
            free_text=self._free_text if tier == self.hierarchy.leaf and self.hierarchy.allows_free_text else None,
        )

    def states(self) -> list[TierState]:
        return [self.state(t) for t in self.hierarchy.tiers]

    # -- operations ----------------------------------------------------------

    def start(self) -> None:
        """Load the root tier (once; later calls hit the store's cache)."""
        self._spawn(self.store.load(self.hierarchy.root))

    def select_tier(self, tier: str, option_id: int) -> None:
        if tier == self.hierarchy.leaf and self.hierarchy.allows_free_text:
            self.select_leaf_option(option_id)
            return

        self._check_selectable(tier, option_id)
        self._selected[tier] = option_id
        self._reset_below(tier)

        child = self.hierarchy.child(tier)
        if child and option_id:
            self._spawn(self.store.load(child, option_id, self.lineage(child)))

    def select_leaf_text(self, text: str) -> None:
        if not self.hierarchy.allows_free_text:
            raise ValueError(f"{self.hierarchy.name} hierarchy has no free-text tier")
        self._selected[self.hierarchy.leaf] = UNSET
        self._free_text = text

    def select_leaf_option(self, option_id: int) -> None:
        leaf = self.hierarchy.leaf
        self._check_selectable(leaf, option_id)
        self._selected[leaf] = option_id

        if not self.hierarchy.allows_free_text:
            return
        # the option may not be loaded yet; keep the text as it is then
        match = self.store.find(leaf, option_id)
        if match is not None:
            self._free_text = match.name

    def restore(self, ids: Mapping[str, int], *, free_text: str = "") -> None:
        """
        Take all selections from a persisted snapshot at once, without the
        per-tier cascade reset, then refetch every tier whose parent is set.
        Ids below the first unset tier are dropped.
        """
        blocked = False
        for tier in self.hierarchy.tiers:
            value = int(ids.get(tier) or UNSET)
            if blocked and value:
                log.warning("restore: dropping %s=%s under an unset ancestor", tier, value)
                value = UNSET
            self._selected[tier] = value
            blocked = blocked or value == UNSET

        self._free_text = free_text if self.hierarchy.allows_free_text else ""

        for tier in self.hierarchy.tiers[1:]:
            self.store.clear(tier)
            parent_id = self._selected[self.hierarchy.parent(tier)]
            if parent_id:
                self._spawn(self.store.load(tier, parent_id, self.lineage(tier)))

    def reset(self) -> None:
        self.restore({})

    async def settle(self) -> None:
        """Wait until no option fetch started by this selector is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.settle()

    # -- internals -----------------------------------------------------------

    def _check_selectable(self, tier: str, option_id: int) -> None:
        if option_id < 0:
            raise ValueError(f"{tier}: option id must be >= 0, got {option_id}")
        if option_id == UNSET:
            return
        unset = [a for a in self.hierarchy.ancestors(tier) if self._selected[a] == UNSET]
        if unset:
            raise ValueError(f"cannot select {tier}={option_id} while {unset[0]} is unset")

    def _reset_below(self, tier: str) -> None:
        for d in self.hierarchy.descendants(tier):
            self._selected[d] = UNSET
            self.store.clear(d)
            if d == self.hierarchy.leaf:
                self._free_text = ""

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("options: %s fetch task failed", self.hierarchy.name, exc_info=exc)
