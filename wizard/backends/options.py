from __future__ import annotations

from pydantic import ValidationError

from wizard.core.errors import FetchError
from wizard.schemas.options import OptionRecord
from wizard.services.http_client import HttpResult


def parse_option_list(result: HttpResult, *, tier: str) -> list[OptionRecord]:
    """
    Turn an option-list response into records, keeping server order.
    Accepts a bare JSON array or an object wrapping it under "data".
    """
    if not result.ok:
        raise FetchError(
            f"{tier} options: {result.error_message or result.error_code}",
            tier=tier,
            status_code=result.status_code,
        )

    rows = result.detail.get("data")
    if not isinstance(rows, list):
        raise FetchError(f"{tier} options: unexpected response shape", tier=tier, status_code=result.status_code)

    try:
        return [OptionRecord.model_validate(r) for r in rows]
    except ValidationError as e:
        raise FetchError(f"{tier} options: invalid record ({e.error_count()} errors)", tier=tier) from e
