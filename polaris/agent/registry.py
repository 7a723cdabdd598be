"""
Agent registry: factories plus a single-instance cache per agent id.

A registry is constructed once per process (see ``create_default_registry``)
and passed to whoever needs it; ``close`` tears it down.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Callable, Dict, List, Optional

from polaris.agent.base import BaseAgent
from polaris.agent.general_assistant import GENERAL_ASSISTANT_ID, GeneralAssistantAgent
from polaris.exceptions import UnknownAgentType
from polaris.logger import logger
from polaris.models import AgentInfo, ModelConfig
from polaris.providers.base import BaseModelProvider

AgentFactory = Callable[[BaseModelProvider, ModelConfig], BaseAgent]


class AgentRegistry:
    """
    Maps agent ids to initialized agents.

    Construction is serialized per id: concurrent ``get_or_create`` calls for
    the same id build and initialize exactly one agent, and the callers that
    lose the race receive that same instance. A cached agent is only handed
    to callers asking for the provider it was built with.
    """

    def __init__(self, default_agent_id: str = GENERAL_ASSISTANT_ID):
        self._factories: Dict[str, AgentFactory] = {}
        self._info: Dict[str, AgentInfo] = {}
        self._agents: Dict[str, BaseAgent] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._default_agent_id = default_agent_id

    def register_factory(
        self, agent_id: str, factory: AgentFactory, info: Optional[AgentInfo] = None
    ) -> None:
        self._factories[agent_id] = factory
        if info is not None:
            self._info[agent_id] = info
        logger.info(f"Registered agent type {agent_id}")

    async def get_or_create(
        self, agent_id: str, provider: BaseModelProvider, config: ModelConfig
    ) -> BaseAgent:
        agent = self._agents.get(agent_id)
        if agent is not None and agent.provider is provider:
            return agent

        factory = self._factories.get(agent_id)
        if factory is None:
            raise UnknownAgentType(agent_id)

        lock = self._locks.setdefault(agent_id, asyncio.Lock())
        async with lock:
            # Another caller may have finished construction while we waited
            agent = self._agents.get(agent_id)
            if agent is not None:
                if agent.provider is provider:
                    return agent
                # In-flight requests may still hold the old agent, so it is replaced without cleanup
                logger.info(
                    f"Cached agent {agent_id} is bound to provider {agent.provider.id}, rebuilding for {provider.id}"
                )

            agent = factory(provider, config)
            await agent.initialize()
            self._agents[agent_id] = agent
            logger.info(f"Created agent {agent_id} bound to provider {provider.id}")
            return agent

    async def clear_all(self) -> None:
        """
        Drop every cached agent, e.g. after a provider switch.

        Waits for in-flight constructions to finish first, so a construction
        started before the call cannot be cached after it.
        """
        async with AsyncExitStack() as stack:
            for agent_id in sorted(self._locks):
                await stack.enter_async_context(self._locks[agent_id])
            dropped = list(self._agents)
            self._agents.clear()
        if dropped:
            logger.info(f"Cleared cached agents: {', '.join(dropped)}")

    def available_agents(self) -> List[AgentInfo]:
        return [self._info[agent_id] for agent_id in self._factories if agent_id in self._info]

    def agent_info(self, agent_id: str) -> Optional[AgentInfo]:
        return self._info.get(agent_id)

    def active_agent_ids(self) -> List[str]:
        return list(self._agents)

    def active_agents(self) -> List[BaseAgent]:
        return list(self._agents.values())

    def is_agent_available(self, agent_id: str) -> bool:
        return agent_id in self._factories

    def default_agent_id(self) -> str:
        return self._default_agent_id

    async def close(self) -> None:
        agents = list(self._agents.values())
        await self.clear_all()
        for agent in agents:
            await agent.cleanup()


def create_default_registry(default_agent_id: str = GENERAL_ASSISTANT_ID) -> AgentRegistry:
    registry = AgentRegistry(default_agent_id)
    registry.register_factory(
        GENERAL_ASSISTANT_ID,
        GeneralAssistantAgent,
        AgentInfo(
            id=GENERAL_ASSISTANT_ID,
            name="General Assistant",
            description="Versatile AI assistant for general tasks, questions, and conversations",
            capabilities=[
                "question-answering",
                "task-planning",
                "creative-writing",
                "analysis",
                "brainstorming",
                "step-by-step-guides",
            ],
            category="General",
            icon="🤖",
        ),
    )
    return registry
