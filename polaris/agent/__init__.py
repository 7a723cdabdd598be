from polaris.agent.base import BaseAgent
from polaris.agent.general_assistant import GeneralAssistantAgent
from polaris.agent.planner import TaskPlanner, calculate_confidence
from polaris.agent.registry import AgentRegistry, create_default_registry
from polaris.agent.tools import Tool

__all__ = [
    "AgentRegistry",
    "BaseAgent",
    "GeneralAssistantAgent",
    "TaskPlanner",
    "Tool",
    "calculate_confidence",
    "create_default_registry",
]
