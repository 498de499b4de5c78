from __future__ import annotations

from typing import Mapping

from wizard.backends.options import parse_option_list
from wizard.schemas.options import OptionRecord, TierLoader
from wizard.services.http_client import ApiHttpClient


class CategoryApi:
    """Category -> Sub-category -> Config type masters."""

    def __init__(self, http: ApiHttpClient):
        self._http = http

    async def categories(self) -> list[OptionRecord]:
        res = await self._http.get_json(url="/masters/categories")
        return parse_option_list(res, tier="category")

    async def subcategories(self, category_id: int) -> list[OptionRecord]:
        res = await self._http.get_json(url=f"/masters/categories/{category_id}/subcategories")
        return parse_option_list(res, tier="subcategory")

    async def config_types(self, category_id: int, subcategory_id: int | None = None) -> list[OptionRecord]:
        res = await self._http.get_json(
            url="/masters/config-types",
            params={"categoryId": category_id, "subcategoryId": subcategory_id},
        )
        return parse_option_list(res, tier="config_type")

    def loaders(self) -> dict[str, TierLoader]:
        async def category(_parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.categories()

        async def subcategory(parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.subcategories(parent)

        async def config_type(parent: int | None, lineage: Mapping[str, int]) -> list[OptionRecord]:
            # endpoint is keyed by both levels
            return await self.config_types(lineage["category"], parent)

        return {"category": category, "subcategory": subcategory, "config_type": config_type}
