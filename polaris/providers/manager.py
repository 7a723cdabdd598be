from typing import Any, AsyncIterator, Dict, List, Optional

from polaris.config import AppConfig
from polaris.exceptions import InvalidConfiguration, ProviderUnavailable, UnknownProvider
from polaris.logger import logger
from polaris.models import ModelConfig
from polaris.providers.base import BaseModelProvider
from polaris.providers.ollama import OllamaProvider
from polaris.providers.openai import OpenAIProvider
from polaris.utils.metrics import MetricsTracker


class ModelManager:
    """Holds the providers available to this process and picks between them."""

    def __init__(
        self,
        providers: Optional[List[BaseModelProvider]] = None,
        model_defaults: Optional[ModelConfig] = None,
        metrics_tracker: Optional[MetricsTracker] = None,
    ):
        self._providers: Dict[str, BaseModelProvider] = {}
        self._default_provider: Optional[BaseModelProvider] = None
        self.model_defaults = model_defaults or ModelConfig(
            temperature=0.7, max_tokens=1000, top_p=0.9, frequency_penalty=0.0, presence_penalty=0.0
        )
        self.metrics_tracker = metrics_tracker or MetricsTracker()
        for provider in providers or []:
            self.register_provider(provider)

    @classmethod
    def from_config(cls, config: AppConfig) -> "ModelManager":
        """Build the built-in providers from the application config."""
        providers: List[BaseModelProvider] = []
        ollama_settings = config.providers.get("ollama")
        if ollama_settings:
            providers.append(
                OllamaProvider(
                    model=ollama_settings.model,
                    base_url=ollama_settings.base_url,
                    timeout=ollama_settings.timeout,
                )
            )
        openai_settings = config.providers.get("openai")
        if openai_settings:
            providers.append(
                OpenAIProvider(
                    model=openai_settings.model,
                    base_url=openai_settings.base_url,
                    api_key=openai_settings.api_key,
                    timeout=openai_settings.timeout,
                )
            )

        manager = cls(providers, model_defaults=ModelConfig(**config.model_defaults.model_dump()))
        if config.default_provider:
            manager.set_default_provider(config.default_provider)
        return manager

    def register_provider(self, provider: BaseModelProvider) -> None:
        self._providers[provider.id] = provider
        # Every call made through the provider is recorded, whoever makes it
        provider.metrics_tracker = self.metrics_tracker
        # The first registered provider becomes the default
        if self._default_provider is None:
            self._default_provider = provider
        logger.info(f"Registered model provider {provider.id} ({provider.type})")

    def get_provider(self, provider_id: str) -> BaseModelProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise UnknownProvider(provider_id)
        return provider

    @property
    def providers(self) -> List[BaseModelProvider]:
        return list(self._providers.values())

    async def _is_provider_authenticated(self, provider: BaseModelProvider) -> bool:
        if provider.type == "local":
            return await provider.is_available()
        return provider.get_status().authenticated

    async def get_authenticated_providers(self) -> List[BaseModelProvider]:
        authenticated = []
        for provider in self._providers.values():
            try:
                if await self._is_provider_authenticated(provider):
                    authenticated.append(provider)
            except Exception as e:
                logger.error(f"Error checking authentication for {provider.id}: {e}")
        return authenticated

    async def authenticate_provider(self, provider_id: str, api_key: Optional[str] = None) -> bool:
        provider = self.get_provider(provider_id)
        try:
            return await provider.authenticate(api_key)
        except Exception as e:
            logger.error(f"Authentication failed for provider {provider_id}: {e}")
            return False

    async def get_best_available_provider(self) -> Optional[BaseModelProvider]:
        """
        Pick a provider, preferring local backends for privacy.

        Authenticated providers win over merely reachable ones.
        """
        authenticated = await self.get_authenticated_providers()
        if authenticated:
            return self._prefer_local(authenticated)

        reachable = []
        for provider in self._providers.values():
            try:
                if await provider.is_available():
                    reachable.append(provider)
            except Exception as e:
                logger.warning(f"Availability check failed for {provider.id}: {e}")
        if not reachable:
            return None
        return self._prefer_local(reachable)

    @staticmethod
    def _prefer_local(candidates: List[BaseModelProvider]) -> BaseModelProvider:
        local = [p for p in candidates if p.type == "local"]
        return local[0] if local else candidates[0]

    def set_default_provider(self, provider_id: str) -> None:
        self._default_provider = self.get_provider(provider_id)

    @property
    def default_provider(self) -> Optional[BaseModelProvider]:
        return self._default_provider

    async def get_providers_status(self) -> Dict[str, Dict[str, Any]]:
        """Status of every provider. Never raises; failures are reported per provider."""
        status: Dict[str, Dict[str, Any]] = {}
        for provider_id, provider in self._providers.items():
            try:
                available = await provider.is_available()
                status[provider_id] = {**provider.get_status().model_dump(), "available": available}
            except Exception as e:
                status[provider_id] = {
                    "id": provider.id,
                    "name": provider.name,
                    "authenticated": provider.is_authenticated,
                    "available": False,
                    "error": str(e),
                }
        return status

    def default_model_config(self) -> ModelConfig:
        return self.model_defaults.model_copy()

    def validate_model_config(self, config: ModelConfig) -> bool:
        try:
            config.validate_bounds()
        except InvalidConfiguration:
            return False
        return True

    async def generate_response(self, provider_id: str, prompt: str, config: ModelConfig) -> str:
        provider = self.get_provider(provider_id)
        config.validate_bounds()

        if provider.type == "remote" and not await self._is_provider_authenticated(provider):
            raise ProviderUnavailable("Provider not authenticated")

        return await provider.generate_response(prompt, config)

    def stream_response(self, provider_id: str, prompt: str, config: ModelConfig) -> AsyncIterator[str]:
        return self.get_provider(provider_id).stream_response(prompt, config)

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
