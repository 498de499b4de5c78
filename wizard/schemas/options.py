from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field


UNSET = 0  # sentinel id: nothing selected / leaf in free-text mode


class OptionRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., gt=0)
    name: str


# loader(parent_id, lineage) -> options in server order.
# lineage holds the selected id of every ancestor tier, root first.
TierLoader = Callable[[int | None, Mapping[str, int]], Awaitable[list[OptionRecord]]]


@dataclass(frozen=True)
class TierState:
    tier: str
    selected_id: int
    options: tuple[OptionRecord, ...]
    loading: bool
    free_text: str | None = None  # leaf tier of a free-text hierarchy only


@dataclass(frozen=True)
class Hierarchy:
    """
    Ordered tiers, root first. Each non-root tier's parent is the tier before it.

    `fields` maps every tier to the FormRecord field holding its selected id;
    `text_field` is the FormRecord field mirroring the leaf's free text.
    """
    name: str
    tiers: tuple[str, ...]
    fields: Mapping[str, str]
    text_field: str | None = None

    @property
    def root(self) -> str:
        return self.tiers[0]

    @property
    def leaf(self) -> str:
        return self.tiers[-1]

    @property
    def allows_free_text(self) -> bool:
        return self.text_field is not None

    def index(self, tier: str) -> int:
        try:
            return self.tiers.index(tier)
        except ValueError:
            raise KeyError(f"Unknown tier {tier!r} for hierarchy {self.name!r}") from None

    def parent(self, tier: str) -> str | None:
        i = self.index(tier)
        return self.tiers[i - 1] if i > 0 else None

    def child(self, tier: str) -> str | None:
        i = self.index(tier)
        return self.tiers[i + 1] if i + 1 < len(self.tiers) else None

    def descendants(self, tier: str) -> tuple[str, ...]:
        return self.tiers[self.index(tier) + 1:]

    def ancestors(self, tier: str) -> tuple[str, ...]:
        return self.tiers[: self.index(tier)]


LOCATION = Hierarchy(
    name="location",
    tiers=("country", "state", "city", "locality"),
    fields={
        "country": "country_id",
        "state": "state_id",
        "city": "city_id",
        "locality": "locality_id",
    },
    text_field="locality",
)

CATEGORY = Hierarchy(
    name="category",
    tiers=("category", "subcategory", "config_type"),
    fields={
        "category": "category_id",
        "subcategory": "subcategory_id",
        "config_type": "config_type_id",
    },
)

HIERARCHIES: dict[str, Hierarchy] = {h.name: h for h in (LOCATION, CATEGORY)}
