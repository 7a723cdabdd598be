from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from polaris.models import AgentInfo, AgentStatus


class ChatRequest(BaseModel):
    """Schema for a chat message."""
    message: str = Field(..., min_length=1, description="The user's message")
    provider: Optional[str] = Field(None, description="Provider id to use; switching providers resets cached agents")
    api_key: Optional[str] = Field(None, description="Credential for remote providers")
    agent_id: Optional[str] = Field(None, description="Agent to route the message to")
    stream: bool = Field(False, description="Stream the answer as newline-delimited JSON")


class ChatResponseBody(BaseModel):
    id: str
    content: str
    confidence: float
    reasoning: Optional[str] = None
    timestamp: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentSummary(BaseModel):
    id: str
    name: str
    status: AgentStatus


class ChatResponse(BaseModel):
    """Schema for a non-streaming chat answer."""
    success: bool = True
    response: ChatResponseBody
    agent: AgentSummary


class ProviderSummary(BaseModel):
    id: str
    name: str
    type: str
    status: Dict[str, Any]


class ChatStatusResponse(BaseModel):
    success: bool = True
    providers: List[ProviderSummary]
    agents: List[AgentSummary]


class AgentListResponse(BaseModel):
    success: bool = True
    agents: List[AgentInfo]
    default_agent: str
