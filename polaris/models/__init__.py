"""
Models package for Polaris.

This package contains Pydantic models that define the core data structures
passed through the reasoning pipeline.
"""

from polaris.models.base import (
    MEMORY_CAP,
    ActionPlan,
    ActionStep,
    AgentInfo,
    AgentResponse,
    AgentStatus,
    Analysis,
    Feedback,
    InputType,
    LearningUpdate,
    LongTermMemory,
    MemoryEntry,
    ModelConfig,
    ProviderStatus,
    ProviderType,
    ResponseType,
    UserInput,
    create_unique_id,
)

__all__ = [
    "MEMORY_CAP",
    "ActionPlan",
    "ActionStep",
    "AgentInfo",
    "AgentResponse",
    "AgentStatus",
    "Analysis",
    "Feedback",
    "InputType",
    "LearningUpdate",
    "LongTermMemory",
    "MemoryEntry",
    "ModelConfig",
    "ProviderStatus",
    "ProviderType",
    "ResponseType",
    "UserInput",
    "create_unique_id",
]
