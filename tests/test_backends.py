import json

import httpx
import pytest

from wizard.backends.categories import CategoryApi
from wizard.backends.locations import LocationApi
from wizard.backends.properties import PropertyApi, extract_draft_id, extract_error_message
from wizard.core.errors import DEFAULT_PUBLISH_ERROR, FetchError, PublishError, RemoteSaveError
from wizard.schemas.form import Attachment, FormRecord
from wizard.services.http_client import ApiHttpClient
from wizard.services.payload import to_form_fields, to_payload


def _client(handler):
    return ApiHttpClient(base_url="http://backend/api", token="tkn", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_location_lists_are_fetched_by_parent_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, dict(request.url.params), request.headers.get("authorization")))
        return httpx.Response(200, json=[{"id": 5, "name": "Haryana"}, {"id": 6, "name": "Punjab", "slug": "pb"}])

    http = _client(handler)
    api = LocationApi(http)
    states = await api.loaders()["state"](1, {"country": 1})
    await http.aclose()

    assert [s.name for s in states] == ["Haryana", "Punjab"]
    assert seen == [("/api/locations/states", {"country_id": "1"}, "Bearer tkn")]


@pytest.mark.asyncio
async def test_option_list_wrapped_in_data_is_accepted():
    def handler(request):
        return httpx.Response(200, json={"data": [{"id": 1, "name": "Residential"}]})

    http = _client(handler)
    categories = await CategoryApi(http).categories()
    await http.aclose()

    assert [c.id for c in categories] == [1]


@pytest.mark.asyncio
async def test_config_types_send_both_levels():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=[])

    http = _client(handler)
    await CategoryApi(http).loaders()["config_type"](11, {"category": 1, "subcategory": 11})
    await http.aclose()

    assert seen == [{"categoryId": "1", "subcategoryId": "11"}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"message": "boom"}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, json=[{"id": 0, "name": "bad id"}]),
    ],
)
async def test_bad_option_responses_raise_fetch_error(response):
    http = _client(lambda request: response)
    with pytest.raises(FetchError):
        await LocationApi(http).cities(5)
    await http.aclose()


@pytest.mark.asyncio
async def test_transport_failure_is_a_fetch_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = _client(handler)
    with pytest.raises(FetchError):
        await LocationApi(http).countries()
    await http.aclose()


@pytest.mark.asyncio
async def test_draft_upsert_sends_draft_id_and_reads_nested_id():
    bodies = []

    def handler(request):
        assert request.method == "PUT"
        assert request.url.path == "/api/properties/draft"
        bodies.append(request.read())
        return httpx.Response(200, json={"data": {"id": 77}})

    http = _client(handler)
    api = PropertyApi(http)
    photo = Attachment(filename="front.jpg", content=b"jpegbytes", content_type="image/jpeg")
    result = await api.upsert(payload={"price": "100", "urgent": True}, attachments=[photo], draft_id=77)
    await http.aclose()

    assert result.draft_id == 77
    body = bodies[0]
    assert b'name="draftId"' in body
    assert b'name="urgent"' in body and b"true" in body
    assert b'name="photos"; filename="front.jpg"' in body


@pytest.mark.asyncio
async def test_draft_upsert_failure_raises_remote_save_error():
    http = _client(lambda request: httpx.Response(503, text="down"))
    with pytest.raises(RemoteSaveError) as exc:
        await PropertyApi(http).upsert(payload={}, attachments=[], draft_id=None)
    await http.aclose()

    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_publish_error_message_from_list():
    http = _client(lambda request: httpx.Response(400, json={"message": ["price required", "city required"]}))
    with pytest.raises(PublishError) as exc:
        await PropertyApi(http).publish(payload={"listingType": "sell"}, attachments=[])
    await http.aclose()

    assert exc.value.message == "price required city required"


def test_extract_helpers():
    assert extract_draft_id({"id": 5}) == 5
    assert extract_draft_id({"data": {"id": "9"}}) == 9
    assert extract_draft_id({"data": []}) is None
    assert extract_draft_id({"id": 0}) is None
    assert extract_error_message({"message": "nope"}) == "nope"
    assert extract_error_message({"raw": "<html>"}) == DEFAULT_PUBLISH_ERROR


def test_payload_projection_drops_empty_values():
    record = FormRecord(
        price="500000",
        selected_plan="gold",
        country_id=1,
        state_id=0,
        amenities=("Lift", "Parking"),
        owner_name="",
    )

    payload = to_payload(record)

    assert payload["plan"] == "gold"
    assert payload["price"] == "500000"
    assert payload["country_id"] == 1
    assert "state_id" not in payload
    assert "ownerName" not in payload
    assert payload["negotiable"] is False
    assert payload["bathrooms"] == 2

    fields = to_form_fields(payload)
    assert fields["negotiable"] == "false"
    assert fields["bathrooms"] == "2"
    assert json.loads(fields["amenities"]) == ["Lift", "Parking"]
