import asyncio
import json

import httpx
import pytest

from learnboost.errors import GenerationError, GenerationParseError, GenerationTimeout, GenerationUnavailable
from learnboost.gemini_client import GeminiClient, extract_text, pick_preferred_model
from learnboost.settings import settings

MODELS = {
    "models": [
        {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
        {"name": "models/gemini-1.5-pro", "supportedGenerationMethods": ["generateContent"]},
        {"name": "models/gemini-2.0-flash-001", "supportedGenerationMethods": ["generateContent"]},
    ]
}


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(handler, **overrides):
    config = settings.model_copy(update={"gemini_api_key": "test-key", "gemini_model": None, **overrides})
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient(config=config, http_client=http)


def _run(client, *prompts):
    async def run():
        try:
            return [await client.generate(p, max_output_tokens=123) for p in prompts]
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_generate_posts_prompt_to_configured_model():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_reply("hello"))

    assert _run(_client(handler, gemini_model="gemini-test"), "Hi") == ["hello"]
    request = seen[0]
    assert request.url.path.endswith("/models/gemini-test:generateContent")
    assert request.url.params["key"] == "test-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "Hi"
    assert body["generationConfig"]["maxOutputTokens"] == 123


def test_model_is_discovered_once_and_cached():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if request.method == "GET":
            return httpx.Response(200, json=MODELS)
        return httpx.Response(200, json=_reply("ok"))

    client = _client(handler)
    assert _run(client, "a", "b") == ["ok", "ok"]
    assert sum(1 for p in calls if p.endswith("/models")) == 1
    assert calls[-1].endswith("/models/gemini-2.0-flash-001:generateContent")


def test_discovery_failure_falls_back_to_default_model():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(403, json={"error": "forbidden"})
        assert request.url.path.endswith(f"/models/{settings.gemini_fallback_model}:generateContent")
        return httpx.Response(200, json=_reply("ok"))

    assert _run(_client(handler), "a") == ["ok"]


def test_timeout_maps_to_generation_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(GenerationTimeout):
        _run(_client(handler, gemini_model="m"), "a")


def test_http_error_maps_to_generation_error():
    with pytest.raises(GenerationError) as info:
        _run(_client(lambda r: httpx.Response(500, text="boom"), gemini_model="m"), "a")
    assert info.value.kind == "generation_failed"


def test_response_without_text_is_parse_error():
    with pytest.raises(GenerationParseError):
        _run(_client(lambda r: httpx.Response(200, json={"candidates": []}), gemini_model="m"), "a")


def test_missing_key_is_unavailable():
    with pytest.raises(GenerationUnavailable):
        GeminiClient(config=settings.model_copy(update={"gemini_api_key": None}))


def test_pick_preferred_model_order():
    assert pick_preferred_model(MODELS["models"], ["gemini-2.0-flash"]) == "gemini-2.0-flash-001"
    assert pick_preferred_model(MODELS["models"], ["gemini-9"]) == "gemini-1.5-pro"
    assert pick_preferred_model(["models/plain"], ["x"]) == "plain"
    assert pick_preferred_model([], ["x"]) is None


def test_extract_text_joins_parts_and_reads_legacy_shape():
    assert extract_text({"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}) == "a\nb"
    assert extract_text({"output": [{"content": [{"text": "legacy"}]}]}) == "legacy"


def test_total_call_time_is_bounded():
    async def slow(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=_reply("late"))

    with pytest.raises(GenerationTimeout):
        _run(_client(slow, gemini_timeout_seconds=0.05), "a")


def test_discovery_counts_against_the_time_bound():
    async def handler(request):
        if request.method == "GET":
            await asyncio.sleep(0.04)
            return httpx.Response(200, json=MODELS)
        await asyncio.sleep(0.04)
        return httpx.Response(200, json=_reply("ok"))

    with pytest.raises(GenerationTimeout):
        _run(_client(handler, gemini_timeout_seconds=0.06), "a")
