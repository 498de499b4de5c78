from __future__ import annotations

from typing import Mapping

from wizard.backends.options import parse_option_list
from wizard.schemas.options import OptionRecord, TierLoader
from wizard.services.http_client import ApiHttpClient


class LocationApi:
    """Country -> State -> City -> Locality option lists."""

    def __init__(self, http: ApiHttpClient):
        self._http = http

    async def countries(self) -> list[OptionRecord]:
        res = await self._http.get_json(url="/locations/countries")
        return parse_option_list(res, tier="country")

    async def states(self, country_id: int) -> list[OptionRecord]:
        res = await self._http.get_json(url="/locations/states", params={"country_id": country_id})
        return parse_option_list(res, tier="state")

    async def cities(self, state_id: int) -> list[OptionRecord]:
        res = await self._http.get_json(url="/locations/cities", params={"state_id": state_id})
        return parse_option_list(res, tier="city")

    async def localities(self, city_id: int) -> list[OptionRecord]:
        res = await self._http.get_json(url="/locations/localities", params={"city_id": city_id})
        return parse_option_list(res, tier="locality")

    def loaders(self) -> dict[str, TierLoader]:
        async def country(_parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.countries()

        async def state(parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.states(parent)

        async def city(parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.cities(parent)

        async def locality(parent: int | None, _lineage: Mapping[str, int]) -> list[OptionRecord]:
            return await self.localities(parent)

        return {"country": country, "state": state, "city": city, "locality": locality}
