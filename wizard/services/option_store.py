from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Mapping

from wizard.core.errors import FetchError
from wizard.schemas.options import Hierarchy, OptionRecord, TierLoader


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Request:
    parent_id: int | None
    seq: int


class TieredOptionStore:
    """
    Option lists for every tier of one hierarchy.

    Each tier has at most one *current* request. A response is applied only
    if its request is still current when it arrives; anything else is a
    stale response and is dropped. `loading` is true exactly while the
    current request is outstanding.
    """

    def __init__(
        self,
        hierarchy: Hierarchy,
        loaders: Mapping[str, TierLoader],
        *,
        cache_enabled: bool = True,
    ):
        missing = [t for t in hierarchy.tiers if t not in loaders]
        if missing:
            raise KeyError(f"No loader for tiers {missing} of hierarchy {hierarchy.name!r}")

        self.hierarchy = hierarchy
        self._loaders = dict(loaders)
        self._cache_enabled = cache_enabled
        self._cache: dict[tuple[str, int | None], tuple[OptionRecord, ...]] = {}
        self._options: dict[str, tuple[OptionRecord, ...]] = {t: () for t in hierarchy.tiers}
        self._current: dict[str, _Request | None] = {t: None for t in hierarchy.tiers}
        self._seq = itertools.count(1)

    def options(self, tier: str) -> tuple[OptionRecord, ...]:
        return self._options[tier]

    def loading(self, tier: str) -> bool:
        return self._current[tier] is not None

    def pending_parent(self, tier: str) -> int | None:
        req = self._current[tier]
        return req.parent_id if req else None

    def find(self, tier: str, option_id: int) -> OptionRecord | None:
        for opt in self._options[tier]:
            if opt.id == option_id:
                return opt
        return None

    def clear(self, tier: str) -> None:
        """Empty a tier and orphan whatever request it has in flight."""
        self._current[tier] = None
        self._options[tier] = ()

    async def load(
        self,
        tier: str,
        parent_id: int | None = None,
        lineage: Mapping[str, int] | None = None,
    ) -> list[OptionRecord]:
        """
        Fetch the options of `tier` under `parent_id` and apply them if the
        request is still current on arrival. Returns what was fetched (empty
        on FetchError, which is logged and absorbed here).
        """
        is_root = tier == self.hierarchy.root
        if is_root:
            parent_id = None
        elif not parent_id:
            # an unset parent never reaches the option service
            self.clear(tier)
            return []

        key = (tier, parent_id)
        if self._cache_enabled and key in self._cache:
            self._current[tier] = None
            self._options[tier] = self._cache[key]
            return list(self._cache[key])

        req = _Request(parent_id=parent_id, seq=next(self._seq))
        self._current[tier] = req

        records: tuple[OptionRecord, ...] | None = None
        try:
            records = tuple(await self._loaders[tier](parent_id, dict(lineage or {})))
        except FetchError as e:
            log.warning("options: %s/%s parent=%s failed: %s", self.hierarchy.name, tier, parent_id, e)
        finally:
            still_current = self._current[tier] is req
            if still_current:
                self._current[tier] = None
                self._options[tier] = records or ()

        if records is None:
            return []

        if self._cache_enabled:
            self._cache[key] = records
        if not still_current:
            log.debug("options: dropped stale %s/%s response for parent=%s", self.hierarchy.name, tier, parent_id)
        return list(records)
