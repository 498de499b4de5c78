from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Literal, Sequence

import httpx


HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# (field name, (filename, content, content type))
MultipartFile = tuple[str, tuple[str, bytes, str]]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    elapsed_ms: int | None = None


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class ApiHttpClient:
    """
    Shared HTTP client for the listing backend.

    - Uses one AsyncClient instance (connection pooling).
    - Attaches the bearer token to every call.
    - Never raises for transport or HTTP failures; callers inspect `ok`.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 20.0,
        max_response_body_chars: int = 20_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        *,
        method: HttpMethod,
        url: str,
        params: Mapping[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        form: Mapping[str, str] | None = None,
        files: Sequence[MultipartFile] | None = None,
    ) -> HttpResult:
        try:
            resp = await self._client.request(
                method=method,
                url=url,
                params={k: v for k, v in (params or {}).items() if v is not None},
                json=json_body,
                data=dict(form) if form is not None else None,
                files=list(files) if files else None,
            )
        except httpx.TimeoutException as e:
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "timeout"},
                error_code="TIMEOUT",
                error_message=str(e) or "timeout",
                retryable=True,
            )
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "request_error"},
                error_code="REQUEST_ERROR",
                error_message=str(e) or type(e).__name__,
                retryable=True,
            )

        detail: dict[str, Any]
        if _is_json_response(resp):
            try:
                parsed = resp.json()
                # list payloads (option lists) land under "data"
                detail = parsed if isinstance(parsed, dict) else {"data": parsed}
            except ValueError:
                detail = {"raw": _cap_text(resp.text, max_chars=self._max_body)}
        else:
            detail = {
                "raw": _cap_text(resp.text, max_chars=self._max_body),
                "content_type": resp.headers.get("content-type"),
            }

        try:
            elapsed_ms = int(resp.elapsed.total_seconds() * 1000)
        except RuntimeError:
            # elapsed is only set once the response is closed
            elapsed_ms = None

        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, elapsed_ms=elapsed_ms)

        retryable = resp.status_code in (408, 429, 500, 502, 503, 504)
        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=retryable,
            elapsed_ms=elapsed_ms,
        )

    # helpers
    async def get_json(self, *, url: str, params: Mapping[str, Any] | None = None) -> HttpResult:
        return await self.request(method="GET", url=url, params=params)

    async def put_multipart(self, *, url: str, form: Mapping[str, str], files: Sequence[MultipartFile] = ()) -> HttpResult:
        return await self.request(method="PUT", url=url, form=form, files=files)

    async def post_multipart(self, *, url: str, form: Mapping[str, str], files: Sequence[MultipartFile] = ()) -> HttpResult:
        return await self.request(method="POST", url=url, form=form, files=files)
