import json
from typing import Callable, List, Optional, Sequence, Union

import httpx
import pytest

from polaris.models import ModelConfig, ProviderStatus
from polaris.providers.base import BaseModelProvider

ANALYSIS_JSON = json.dumps(
    {
        "intent": "Brainstorm logo ideas",
        "confidence": 0.9,
        "entities": {"key_entities": "logo"},
        "context": {"domain": "design", "complexity": "low", "urgency": "low"},
        "previousConversation": [],
    }
)

PLAN_JSON = json.dumps(
    {
        "id": "plan_logo",
        "steps": [
            {
                "id": "step_1",
                "action": "List logo concepts",
                "parameters": {"count": 5},
                "dependencies": [],
                "estimatedDuration": 2,
            }
        ],
        "estimatedDuration": 2,
        "requiresApproval": False,
    }
)

LONG_ANSWER = "Here are some logo ideas. " + "A bold geometric mark with a clean wordmark. " * 15

Reply = Union[str, Exception]


def scripted_reply(prompt: str) -> str:
    """Answer each pipeline stage with a fixed analysis, plan and text."""
    if "provide a structured analysis" in prompt:
        return f"<think>The user wants ideas.</think>\n```json\n{ANALYSIS_JSON}\n```"
    if "create a detailed action plan" in prompt:
        return f"Sure! Here is the plan:\n{PLAN_JSON}\nLet me know."
    return LONG_ANSWER


class StubProvider(BaseModelProvider):
    """
    Provider double driven by a script.

    ``script`` is either a list of replies consumed in order (an Exception
    entry is raised instead of returned) or a callable mapping the prompt to
    a reply.
    """

    def __init__(
        self,
        script: Union[Sequence[Reply], Callable[[str], Reply], None] = None,
        stream_chunks: Optional[Sequence[Reply]] = None,
        provider_id: str = "stub",
        provider_type: str = "local",
        authenticated: bool = True,
        available: bool = True,
        model: str = "stub-model",
    ):
        super().__init__(
            provider_id,
            f"Stub {provider_id}",
            provider_type,
            "http://stub.invalid",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))),
        )
        script = scripted_reply if script is None else script
        self._script = script if callable(script) else list(script)
        self.stream_chunks = list(stream_chunks or [])
        self.is_authenticated = authenticated
        self.available = available
        self._model = model
        self.prompts: List[str] = []
        self.stream_closed = False
        self.availability_error: Optional[Exception] = None

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._model = model

    async def list_models(self) -> List[str]:
        return [self._model]

    def _next_reply(self, prompt: str) -> str:
        if callable(self._script):
            reply = self._script(prompt)
        else:
            # The last entry repeats once the others are used up
            reply = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def authenticate(self, api_key: Optional[str] = None) -> bool:
        if self.type == "remote":
            self.is_authenticated = bool(api_key) and api_key != "bad"
        else:
            self.is_authenticated = self.available
        return self.is_authenticated

    async def _generate_response(self, prompt: str, config: ModelConfig) -> str:
        self.validate_config(config)
        self.ensure_ready()
        self.prompts.append(prompt)
        return self._next_reply(prompt)

    async def _stream_response(self, prompt: str, config: ModelConfig):
        self.validate_config(config)
        self.ensure_ready()
        self.prompts.append(prompt)
        try:
            for chunk in self.stream_chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.stream_closed = True

    async def is_available(self) -> bool:
        if self.availability_error is not None:
            raise self.availability_error
        return self.available

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            id=self.id,
            name=self.name,
            authenticated=self.is_authenticated,
            available=self.available,
            model=self._model,
        )


@pytest.fixture
def make_provider():
    """Factory for stub providers."""
    return StubProvider


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def model_config():
    return ModelConfig(temperature=0.7, max_tokens=1000, top_p=0.9)
