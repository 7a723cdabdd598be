import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from polaris.exceptions import ProviderUnavailable
from polaris.logger import logger
from polaris.models import ModelConfig, ProviderStatus, ProviderType
from polaris.utils.metrics import MetricsTracker


@runtime_checkable
class SupportsModelSelection(Protocol):
    """Capability implemented by providers whose backend model can be switched."""

    @property
    def model(self) -> str: ...

    def set_model(self, model: str) -> None: ...

    async def list_models(self) -> List[str]: ...


class BaseModelProvider(ABC):
    """
    Base class for language-model backends.

    Every provider owns one ``httpx.AsyncClient``; pass ``http_client`` to
    share a client or to inject a transport in tests.
    """

    def __init__(
        self,
        provider_id: str,
        name: str,
        provider_type: ProviderType,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        headers: Optional[Dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.id = provider_id
        self.name = name
        self.type = provider_type
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.headers = headers or {"Content-Type": "application/json"}
        self.is_authenticated = False
        # Set by ModelManager.register_provider
        self.metrics_tracker: Optional[MetricsTracker] = None
        self.async_client = http_client or httpx.AsyncClient(timeout=timeout, headers=self.headers)

    async def close(self):
        """Close the async client."""
        await self.async_client.aclose()

    @abstractmethod
    async def authenticate(self, api_key: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    async def _generate_response(self, prompt: str, config: ModelConfig) -> str:
        ...

    @abstractmethod
    def _stream_response(self, prompt: str, config: ModelConfig) -> AsyncIterator[str]:
        ...

    async def generate_response(self, prompt: str, config: ModelConfig) -> str:
        started = time.perf_counter()
        success = False
        output = ""
        try:
            output = await self._generate_response(prompt, config)
            success = True
            return output
        finally:
            self._record_call(started, success, len(output))

    async def stream_response(self, prompt: str, config: ModelConfig) -> AsyncIterator[str]:
        """Stream cleaned fragments; the call is recorded once the stream ends."""
        started = time.perf_counter()
        failed = False
        output_chars = 0
        try:
            async with aclosing(self._stream_response(prompt, config)) as fragments:
                async for fragment in fragments:
                    output_chars += len(fragment)
                    yield fragment
        except Exception:
            failed = True
            raise
        finally:
            # An abandoned stream is not a failed call
            self._record_call(started, not failed, output_chars)

    def _record_call(self, started: float, success: bool, output_chars: int) -> None:
        if self.metrics_tracker is None:
            return
        self.metrics_tracker.record_llm_call(
            self.id,
            latency_ms=(time.perf_counter() - started) * 1000,
            success=success,
            output_chars=output_chars,
        )

    @abstractmethod
    async def is_available(self) -> bool:
        ...

    def validate_config(self, config: ModelConfig) -> None:
        config.validate_bounds()

    def ensure_ready(self) -> None:
        if not self.is_authenticated:
            raise ProviderUnavailable(f"{self.name} provider not available")

    def build_prompt(self, prompt: str, config: ModelConfig) -> str:
        system_prompt = config.system_prompt or ""
        return f"{system_prompt}\n\n{prompt}" if system_prompt else prompt

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            id=self.id,
            name=self.name,
            authenticated=self.is_authenticated,
            available=False,  # Overridden by subclasses
        )

    async def _post_json(self, url: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded body, mapping failures to ProviderUnavailable."""
        try:
            response = await self.async_client.post(url, json=payload, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.name} API error: {e.response.status_code} - {e.response.text}")
            raise ProviderUnavailable(f"{self.name} API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error calling {self.name}: {str(e)}")
            raise ProviderUnavailable(f"{self.name} request failed: {e}") from e
        except ValueError as e:
            logger.error(f"{self.name} returned a non-JSON body: {str(e)}")
            raise ProviderUnavailable(f"{self.name} returned an invalid response") from e

    async def _stream_lines(self, url: str, payload: Dict[str, Any], **kwargs) -> AsyncIterator[str]:
        """Yield raw response lines of a streaming POST. Closing the iterator closes the connection."""
        try:
            async with self.async_client.stream("POST", url, json=payload, **kwargs) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(f"{self.name} API streaming error: {response.status_code} - {body}")
                    raise ProviderUnavailable(f"{self.name} API error: {response.status_code}")
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            logger.error(f"Error in {self.name} streaming: {str(e)}")
            raise ProviderUnavailable(f"{self.name} streaming failed: {e}") from e
