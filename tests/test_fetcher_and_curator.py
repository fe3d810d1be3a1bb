import json

import httpx
import pytest
import respx

from insight_feed.crawling import (
    ContentFetcher,
    CurationError,
    CurationErrorKind,
    FetchError,
    InsightCurator,
)

GATEWAY = "https://gateway.test/v1"


def make_curator() -> InsightCurator:
    return InsightCurator(api_key="test-key", base_url=GATEWAY, model="test-model", temperature=0.5)


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.asyncio
@respx.mock
async def test_fetch_returns_body_and_status():
    respx.get("https://example.com/").mock(return_value=httpx.Response(200, text="<p>hello</p>"))
    result = await ContentFetcher().fetch("https://example.com/")
    assert result.status_code == 200
    assert result.text == "<p>hello</p>"


@pytest.mark.asyncio
@respx.mock
async def test_fetch_non_success_status_raises():
    respx.get("https://example.com/missing").mock(return_value=httpx.Response(404))
    with pytest.raises(FetchError) as exc_info:
        await ContentFetcher().fetch("https://example.com/missing")
    assert exc_info.value.status_code == 404
    assert "404" in str(exc_info.value)
    assert "Failed to fetch website" in str(exc_info.value)


@pytest.mark.asyncio
@respx.mock
async def test_fetch_network_error_raises():
    respx.get("https://unreachable.test/").mock(side_effect=httpx.ConnectError("connection refused"))
    with pytest.raises(FetchError) as exc_info:
        await ContentFetcher().fetch("https://unreachable.test/")
    assert exc_info.value.status_code is None


def test_build_messages_carries_topic_url_text_and_schema():
    messages = make_curator().build_messages(
        "Some page text", "Artificial Intelligence", "https://example.com", topic_description="Model releases"
    )
    assert [m["role"] for m in messages] == ["system", "user"]
    assert "Artificial Intelligence" in messages[0]["content"]
    user = messages[1]["content"]
    assert "https://example.com" in user
    assert "Some page text" in user
    assert "Model releases" in user
    assert '"insights"' in user
    assert "empty insights array" in user


@pytest.mark.asyncio
@respx.mock
async def test_curate_posts_request_and_returns_content():
    route = respx.post(f"{GATEWAY}/chat/completions").mock(
        return_value=httpx.Response(200, json=completion('{"insights": []}'))
    )
    content = await make_curator().curate("text", "Technology", "https://example.com")
    assert content == '{"insights": []}'

    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer test-key"
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.5
    assert len(body["messages"]) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, kind",
    [
        (429, CurationErrorKind.RATE_LIMITED),
        (402, CurationErrorKind.PAYMENT_REQUIRED),
        (500, CurationErrorKind.UPSTREAM_ERROR),
        (400, CurationErrorKind.UPSTREAM_ERROR),
    ],
)
async def test_curate_maps_error_statuses(status, kind):
    with respx.mock:
        respx.post(f"{GATEWAY}/chat/completions").mock(return_value=httpx.Response(status, text="nope"))
        with pytest.raises(CurationError) as exc_info:
            await make_curator().curate("text", "Technology", "https://example.com")
    assert exc_info.value.kind == kind
    assert exc_info.value.status_code == status


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"json": completion(None)},
        {"json": completion("   ")},
        {"json": {"choices": []}},
        {"text": "not json"},
    ],
)
async def test_curate_without_content_is_empty_response(body):
    with respx.mock:
        respx.post(f"{GATEWAY}/chat/completions").mock(return_value=httpx.Response(200, **body))
        with pytest.raises(CurationError) as exc_info:
            await make_curator().curate("text", "Technology", "https://example.com")
    assert exc_info.value.kind == CurationErrorKind.EMPTY_RESPONSE


@pytest.mark.asyncio
@respx.mock
async def test_curate_transport_error_is_upstream_error():
    respx.post(f"{GATEWAY}/chat/completions").mock(side_effect=httpx.ReadTimeout("timed out"))
    with pytest.raises(CurationError) as exc_info:
        await make_curator().curate("text", "Technology", "https://example.com")
    assert exc_info.value.kind == CurationErrorKind.UPSTREAM_ERROR
