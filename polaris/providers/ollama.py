import re
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

import httpx

from polaris.logger import logger
from polaris.models import ModelConfig, ProviderStatus
from polaris.providers.base import BaseModelProvider
from polaris.providers.stream import decode_ndjson_line, transform_stream
from polaris.utils.extraction import strip_monologue

AVAILABILITY_TIMEOUT = 5.0

# Plan scaffolding that local models tend to echo back from the execution prompt
_SCAFFOLDING = [
    re.compile(r"\*\*Plan ID:.*?\*\*"),
    re.compile(r"\*\*Steps to execute:.*?\*\*"),
    re.compile(r"\*\*Estimated Duration:.*?\*\*"),
    re.compile(r"\*\*Requires Approval:.*?\*\*"),
    re.compile(r"\*\*Reasoning Process:.*?\*\*"),
    re.compile(r"- Step:.*?\n"),
    re.compile(r"- Parameters:.*?\n"),
    re.compile(r"\*\*Response:\*\*"),
    re.compile(r"\*\*Conclusion:\*\*"),
]
_BLANK_RUNS = re.compile(r"\n\s*\n\s*\n")


def clean_response(text: str) -> str:
    """Remove monologue blocks and echoed plan scaffolding from a full response."""
    cleaned = strip_monologue(text)
    for pattern in _SCAFFOLDING:
        cleaned = pattern.sub("", cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()


class OllamaProvider(BaseModelProvider):
    """Provider for a local Ollama server."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            "ollama", "Ollama", "local", base_url, timeout=timeout, http_client=http_client
        )
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        logger.info(f"Ollama: switching model from '{self._model}' to '{model}'")
        self._model = model

    async def authenticate(self, api_key: Optional[str] = None) -> bool:
        # Local instances need no credential; authentication means the server answers with models.
        available = await self.is_available()
        self.is_authenticated = available
        if available:
            logger.info(f"Ollama authenticated successfully using model: {self._model}")
        else:
            logger.error("Ollama authentication failed: Service not available or no models found")
        return available

    def _payload(self, prompt: str, config: ModelConfig, stream: bool) -> dict:
        return {
            "model": self._model,
            "prompt": self.build_prompt(prompt, config),
            "options": {
                "temperature": config.temperature,
                "top_p": config.top_p,
                "num_predict": config.max_tokens,
                "repeat_penalty": config.frequency_penalty + 1,
            },
            "stream": stream,
        }

    async def _generate_response(self, prompt: str, config: ModelConfig) -> str:
        self.validate_config(config)
        self.ensure_ready()

        data = await self._post_json(
            f"{self.base_url}/api/generate", self._payload(prompt, config, stream=False)
        )
        return clean_response(data.get("response") or "")

    async def _stream_response(self, prompt: str, config: ModelConfig) -> AsyncIterator[str]:
        self.validate_config(config)
        self.ensure_ready()

        lines = self._stream_lines(
            f"{self.base_url}/api/generate", self._payload(prompt, config, stream=True)
        )
        async with aclosing(transform_stream(lines, decode_ndjson_line)) as fragments:
            async for fragment in fragments:
                yield fragment

    async def list_models(self) -> List[str]:
        try:
            response = await self.async_client.get(
                f"{self.base_url}/api/tags", timeout=AVAILABILITY_TIMEOUT
            )
            response.raise_for_status()
            models = response.json().get("models") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching Ollama models: {e}")
            return []
        return [m["name"] for m in models if isinstance(m, dict) and m.get("name")]

    async def is_available(self) -> bool:
        """
        Probe the local server.

        If the preferred model is not installed, the first installed model is
        selected instead and the switch is logged.
        """
        models = await self.list_models()
        if not models:
            return False
        if self._model in models:
            return True
        logger.warning(
            f"Ollama: Preferred model '{self._model}' not found. Using '{models[0]}' instead."
        )
        self._model = models[0]
        return True

    async def pull_model(self, model_name: str) -> bool:
        try:
            response = await self.async_client.post(
                f"{self.base_url}/api/pull", json={"name": model_name, "stream": False}
            )
        except httpx.HTTPError as e:
            logger.error(f"Error pulling Ollama model: {e}")
            return False
        return response.is_success

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            **super().get_status().model_dump(exclude={"available"}),
            available=self.is_authenticated,
            model=self._model,
            base_url=self.base_url,
        )
