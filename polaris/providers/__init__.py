from polaris.providers.base import BaseModelProvider, SupportsModelSelection
from polaris.providers.manager import ModelManager
from polaris.providers.ollama import OllamaProvider
from polaris.providers.openai import OpenAIProvider

__all__ = [
    "BaseModelProvider",
    "ModelManager",
    "OllamaProvider",
    "OpenAIProvider",
    "SupportsModelSelection",
]
