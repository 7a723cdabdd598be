from typing import Optional

from fastapi import Request

from polaris.agent import AgentRegistry
from polaris.providers import ModelManager


class ChatSession:
    """Process-wide chat state: remembers which provider served the last request."""

    def __init__(self):
        self.last_provider_id: Optional[str] = None


def get_model_manager(request: Request) -> ModelManager:
    return request.app.state.model_manager


def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry


def get_chat_session(request: Request) -> ChatSession:
    return request.app.state.chat_session
