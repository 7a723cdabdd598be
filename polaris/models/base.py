"""
Base models for the Polaris reasoning pipeline.

This module contains the Pydantic models that flow through the pipeline:
user input, the planner's analysis and action plan, agent responses,
long-term memory and model configuration.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from polaris.exceptions import InvalidConfiguration

MEMORY_CAP = 100


def create_unique_id(prefix: str = "id") -> str:
    """Creates a unique, prefixed identifier"""
    return f"{prefix}_{uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InputType(str, Enum):
    """Kinds of user input"""

    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"


class ResponseType(str, Enum):
    """Kinds of agent response"""

    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    ACTION = "action"


class Feedback(str, Enum):
    """Feedback classes produced by the reflect step"""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UserInput(BaseModel):
    """A single message submitted by the caller. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: create_unique_id("input"))
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: InputType = InputType.TEXT
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Analysis(BaseModel):
    """
    The planner's reading of a user input.

    Produced once per input and consumed by the planning stage.
    """

    model_config = ConfigDict(populate_by_name=True)

    intent: str = "Unknown intent"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    entities: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)
    previous_conversation: List[str] = Field(default_factory=list, alias="previousConversation")

    @field_validator("previous_conversation", mode="before")
    @classmethod
    def coerce_conversation(cls, v):
        """Models sometimes return a single string instead of a list"""
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [str(item) for item in v]


class ActionStep(BaseModel):
    """One step of an action plan"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: create_unique_id("step"))
    action: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    estimated_duration: float = Field(default=1.0, ge=0.0, alias="estimatedDuration")

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return str(v)

    @field_validator("dependencies", mode="before")
    @classmethod
    def stringify_dependencies(cls, v):
        if v is None:
            return []
        return [str(item) for item in v]


class ActionPlan(BaseModel):
    """
    An ordered list of steps produced by the planning stage.

    Step dependencies may only reference steps of the same plan.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: create_unique_id("plan"))
    steps: List[ActionStep] = Field(default_factory=list)
    estimated_duration: float = Field(default=1.0, ge=0.0, alias="estimatedDuration")
    requires_approval: bool = Field(default=False, alias="requiresApproval")

    @model_validator(mode="after")
    def validate_dependencies(self):
        """Reject dependencies that point outside the plan"""
        step_ids = {step.id for step in self.steps}
        for step in self.steps:
            unknown = set(step.dependencies) - step_ids
            if unknown:
                raise ValueError(
                    f"Step {step.id} depends on unknown steps: {sorted(unknown)}"
                )
        return self


class AgentResponse(BaseModel):
    """Terminal artifact of one pipeline run"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: create_unique_id("response"))
    agent_id: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: ResponseType = ResponseType.TEXT
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    reasoning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary form"""
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "confidence": self.confidence,
            "metadata": self.metadata,
            "reasoning": self.reasoning,
        }


class MemoryEntry(BaseModel):
    """A remembered interaction"""

    id: str = Field(default_factory=lambda: create_unique_id("memory"))
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    embedding: Optional[List[float]] = None


class LongTermMemory(BaseModel):
    """
    Per-agent long-term memory.

    The memories list never holds more than ``MEMORY_CAP`` entries once
    ``remember`` has run; overflow keeps the highest-importance entries and
    evicts the oldest among equals.
    """

    user_id: str = ""
    agent_id: str
    memories: List[MemoryEntry] = Field(default_factory=list)
    patterns: Dict[str, Any] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)

    def remember(self, entry: MemoryEntry, cap: int = MEMORY_CAP) -> None:
        self.memories.append(entry)
        if len(self.memories) <= cap:
            return
        # Rank by importance, newest first among equals; the tail is evicted.
        indexed = list(enumerate(self.memories))
        ranked = sorted(indexed, key=lambda pair: (-pair[1].importance, -pair[0]))
        kept = sorted(ranked[:cap], key=lambda pair: pair[0])
        self.memories = [entry for _, entry in kept]


class LearningUpdate(BaseModel):
    """Summary returned by the reflect step"""

    patterns: Dict[str, Any] = Field(default_factory=dict)
    preferences: Dict[str, Any] = Field(default_factory=dict)
    feedback: Feedback = Feedback.NEUTRAL
    context: str = ""


class ModelConfig(BaseModel):
    """
    Generation parameters for a language model call.

    Values are not range-checked on construction; ``validate_bounds`` is run by
    every provider before a call and raises InvalidConfiguration instead of
    clamping.
    """

    temperature: float = 0.7
    max_tokens: int = 1000
    top_p: float = 0.9
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    system_prompt: Optional[str] = None

    def validate_bounds(self) -> "ModelConfig":
        if not 0 <= self.temperature <= 1:
            raise InvalidConfiguration("Temperature must be between 0 and 1")
        if self.max_tokens < 1:
            raise InvalidConfiguration("Max tokens must be greater than 0")
        if not 0 <= self.top_p <= 1:
            raise InvalidConfiguration("Top P must be between 0 and 1")
        if not -2 <= self.frequency_penalty <= 2:
            raise InvalidConfiguration("Frequency penalty must be between -2 and 2")
        if not -2 <= self.presence_penalty <= 2:
            raise InvalidConfiguration("Presence penalty must be between -2 and 2")
        return self


class ProviderStatus(BaseModel):
    """Point-in-time snapshot of a provider. Backend-specific fields are kept as extras."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    authenticated: bool = False
    available: bool = False


class AgentInfo(BaseModel):
    """Catalogue entry describing an agent type"""

    id: str
    name: str
    description: str
    capabilities: List[str] = Field(default_factory=list)
    category: str = "General"
    icon: str = ""


class AgentStatus(BaseModel):
    id: str
    name: str
    initialized: bool
    capabilities: List[str] = Field(default_factory=list)
    memory_count: int = 0


ProviderType = Literal["local", "remote"]
