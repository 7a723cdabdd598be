from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional

import httpx
from openai.types.chat import ChatCompletion
from pydantic import ValidationError

from polaris.exceptions import ProviderUnavailable
from polaris.logger import logger
from polaris.models import ModelConfig, ProviderStatus
from polaris.providers.base import BaseModelProvider
from polaris.providers.stream import decode_sse_line, transform_stream
from polaris.utils.extraction import strip_monologue


class OpenAIProvider(BaseModelProvider):
    """
    Provider for OpenAI-compatible chat completion APIs.

    Point ``base_url`` at https://openrouter.ai/api/v1 (plus the
    ``HTTP-Referer``/``X-Title`` extra headers) to use OpenRouter.
    """

    def __init__(
        self,
        model: str = "gpt-4",
        base_url: str = "https://api.openai.com/v1",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        extra_headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Content-Type": "application/json", **(extra_headers or {})}
        super().__init__(
            "openai",
            "OpenAI",
            "remote",
            base_url,
            api_key=api_key,
            timeout=timeout,
            headers=headers,
            http_client=http_client,
        )
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._model = model

    def _auth_headers(self, api_key: Optional[str] = None) -> Dict[str, str]:
        key = api_key or self.api_key
        return {"Authorization": f"Bearer {key}"} if key else {}

    async def authenticate(self, api_key: Optional[str] = None) -> bool:
        if not api_key:
            self.is_authenticated = False
            return False

        try:
            response = await self.async_client.get(
                f"{self.base_url}/models", headers=self._auth_headers(api_key)
            )
        except httpx.HTTPError as e:
            logger.error(f"OpenAI authentication error: {e}")
            self.is_authenticated = False
            return False

        if response.is_success:
            self.api_key = api_key
            self.is_authenticated = True
            return True

        logger.warning(f"OpenAI authentication rejected: {response.status_code}")
        self.is_authenticated = False
        return False

    def ensure_ready(self) -> None:
        if not self.is_authenticated or not self.api_key:
            raise ProviderUnavailable("OpenAI provider not authenticated")

    def _payload(self, prompt: str, config: ModelConfig, stream: bool) -> dict:
        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": self.build_prompt(prompt, config)}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
            "frequency_penalty": config.frequency_penalty,
            "presence_penalty": config.presence_penalty,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def _generate_response(self, prompt: str, config: ModelConfig) -> str:
        self.validate_config(config)
        self.ensure_ready()

        data = await self._post_json(
            f"{self.base_url}/chat/completions",
            self._payload(prompt, config, stream=False),
            headers=self._auth_headers(),
        )
        try:
            completion = ChatCompletion.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unexpected OpenAI response format: {e}")
            raise ProviderUnavailable("OpenAI returned an unexpected response") from e

        if not completion.choices:
            return ""
        content = completion.choices[0].message.content or ""
        return strip_monologue(content).strip()

    async def _stream_response(self, prompt: str, config: ModelConfig) -> AsyncIterator[str]:
        self.validate_config(config)
        self.ensure_ready()

        lines = self._stream_lines(
            f"{self.base_url}/chat/completions",
            self._payload(prompt, config, stream=True),
            headers=self._auth_headers(),
        )
        async with aclosing(transform_stream(lines, decode_sse_line)) as fragments:
            async for fragment in fragments:
                yield fragment

    async def list_models(self) -> List[str]:
        try:
            response = await self.async_client.get(
                f"{self.base_url}/models", headers=self._auth_headers()
            )
            response.raise_for_status()
            data = response.json().get("data") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching OpenAI models: {e}")
            return []
        return [m["id"] for m in data if isinstance(m, dict) and m.get("id")]

    async def is_available(self) -> bool:
        try:
            response = await self.async_client.get(
                f"{self.base_url}/models", headers=self._auth_headers()
            )
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            **super().get_status().model_dump(exclude={"available"}),
            available=True,
            model=self._model,
        )
