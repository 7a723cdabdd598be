import json

import httpx
import pytest

from polaris.exceptions import InvalidConfiguration, ProviderUnavailable
from polaris.models import ModelConfig
from polaris.providers import OpenAIProvider, SupportsModelSelection


def completion(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def chunk_event(content: str) -> str:
    chunk = {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "gpt-4",
        "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": None}],
    }
    return f"data: {json.dumps(chunk)}\n\n"


class FakeOpenAI:
    """OpenAI-compatible endpoint accepting the key "good-key"."""

    def __init__(self):
        self.requests = []
        self.models_status = 200
        self.content = "<think>internal</think> The capital is Paris."

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        authorized = request.headers.get("Authorization") == "Bearer good-key"
        if request.url.path == "/v1/models":
            if self.models_status >= 500:
                return httpx.Response(self.models_status)
            if not authorized:
                return httpx.Response(401, json={"error": "invalid key"})
            return httpx.Response(200, json={"data": [{"id": "gpt-4"}, {"id": "gpt-4o-mini"}]})
        if request.url.path == "/v1/chat/completions":
            if not authorized:
                return httpx.Response(401, json={"error": "invalid key"})
            body = json.loads(request.content)
            if body.get("stream"):
                events = [
                    chunk_event("<thi"),
                    chunk_event("nk>reasoning</think>"),
                    ": keep-alive\n\n",
                    chunk_event("Bonjour"),
                    chunk_event(" !"),
                    "data: [DONE]\n\n",
                ]
                return httpx.Response(200, text="".join(events))
            return httpx.Response(200, json=completion(self.content))
        return httpx.Response(404)

    def completion_bodies(self):
        return [json.loads(r.content) for r in self.requests if r.url.path == "/v1/chat/completions"]


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def openai_provider(fake_openai):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_openai))
    return OpenAIProvider(model="gpt-4", base_url="https://api.test/v1", http_client=client)


def test_supports_model_selection(openai_provider):
    assert isinstance(openai_provider, SupportsModelSelection)


async def test_authenticate_without_key_fails(openai_provider):
    assert await openai_provider.authenticate() is False
    assert openai_provider.is_authenticated is False


async def test_authenticate_rejected_key(openai_provider):
    assert await openai_provider.authenticate("wrong") is False
    assert openai_provider.api_key is None


async def test_authenticate_stores_key(openai_provider):
    assert await openai_provider.authenticate("good-key") is True
    assert openai_provider.api_key == "good-key"
    assert openai_provider.get_status().authenticated is True


async def test_generate_requires_authentication(openai_provider, model_config):
    with pytest.raises(ProviderUnavailable):
        await openai_provider.generate_response("hi", model_config)


async def test_generate_response(fake_openai, openai_provider):
    await openai_provider.authenticate("good-key")
    config = ModelConfig(temperature=0.3, max_tokens=50, top_p=1.0, presence_penalty=0.5, system_prompt="Be terse.")

    text = await openai_provider.generate_response("Capital of France?", config)

    assert text == "The capital is Paris."
    body = fake_openai.completion_bodies()[0]
    assert body["model"] == "gpt-4"
    assert body["messages"] == [{"role": "user", "content": "Be terse.\n\nCapital of France?"}]
    assert body["max_tokens"] == 50
    assert body["presence_penalty"] == 0.5
    assert "stream" not in body


async def test_invalid_config_rejected_before_network(fake_openai, openai_provider):
    await openai_provider.authenticate("good-key")
    with pytest.raises(InvalidConfiguration):
        await openai_provider.generate_response("hi", ModelConfig(frequency_penalty=3))
    assert fake_openai.completion_bodies() == []


async def test_rejected_request_becomes_provider_unavailable(openai_provider, model_config):
    await openai_provider.authenticate("good-key")
    openai_provider.api_key = "revoked"
    with pytest.raises(ProviderUnavailable):
        await openai_provider.generate_response("hi", model_config)


async def test_stream_response_decodes_sse(fake_openai, openai_provider, model_config):
    await openai_provider.authenticate("good-key")
    fragments = [f async for f in openai_provider.stream_response("hi", model_config)]
    assert "".join(fragments) == "Bonjour !"
    assert fake_openai.completion_bodies()[0]["stream"] is True


async def test_list_models(openai_provider):
    await openai_provider.authenticate("good-key")
    assert await openai_provider.list_models() == ["gpt-4", "gpt-4o-mini"]


async def test_is_available_unless_server_error(fake_openai, openai_provider):
    # 401 still means the endpoint is up
    assert await openai_provider.is_available() is True
    fake_openai.models_status = 502
    assert await openai_provider.is_available() is False


async def test_get_status_reports_model(openai_provider):
    status = openai_provider.get_status().model_dump()
    assert status["id"] == "openai"
    assert status["available"] is True
    assert status["model"] == "gpt-4"
