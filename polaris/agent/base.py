# polaris/agent/base.py

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

from polaris.agent.planner import TaskPlanner
from polaris.agent.tools import Tool
from polaris.exceptions import InvalidConfiguration
from polaris.logger import logger
from polaris.models import (
    MEMORY_CAP,
    ActionPlan,
    AgentResponse,
    AgentStatus,
    Analysis,
    Feedback,
    LearningUpdate,
    LongTermMemory,
    MemoryEntry,
    ModelConfig,
    ResponseType,
    UserInput,
    create_unique_id,
)
from polaris.providers.base import BaseModelProvider


class BaseAgent(ABC):
    """
    A reasoning agent bound to one model provider.

    The agent owns its planner, its long-term memory and its tools. Memory is
    only mutated by the reflect step, which is serialized by ``_memory_lock``
    so concurrent requests on the same agent cannot interleave evictions.
    """

    def __init__(
        self,
        agent_id: str,
        name: str,
        description: str,
        capabilities: List[str],
        system_prompt: str,
        provider: BaseModelProvider,
        config: ModelConfig,
        memory_cap: int = MEMORY_CAP,
    ):
        self.id = agent_id
        self.name = name
        self.description = description
        self.capabilities = capabilities
        self.system_prompt = system_prompt
        self.provider = provider
        self.config = config
        self.memory_cap = memory_cap
        self.is_initialized = False
        self.tools: Dict[str, Tool] = {}

        self._init_lock = asyncio.Lock()
        self._memory_lock = asyncio.Lock()

        self.memory = self.create_memory()
        self.planner = self.create_planner()

    @abstractmethod
    def create_memory(self) -> LongTermMemory:
        ...

    def create_planner(self) -> TaskPlanner:
        return TaskPlanner(self.provider, self.config, self.id, self.system_prompt)

    async def initialize(self) -> None:
        async with self._init_lock:
            if self.is_initialized:
                return
            try:
                if not self.provider.get_status().authenticated:
                    logger.warning(f"Model provider {self.provider.id} not authenticated")

                await self.initialize_tools()
                await self.load_memory()

                self.is_initialized = True
                logger.info(f"Agent {self.id} initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize agent {self.id}: {e}")
                raise

    async def initialize_tools(self) -> None:
        """Register agent-specific tools. Subclasses override this."""

    async def load_memory(self) -> None:
        """Load stored memory patterns. Subclasses override this."""

    async def analyze(self, user_input: UserInput) -> Analysis:
        if not self.is_initialized:
            await self.initialize()
        return await self.planner.analyze_task(user_input)

    async def plan(self, analysis: Analysis) -> ActionPlan:
        if not self.is_initialized:
            await self.initialize()
        return await self.planner.create_plan(analysis)

    async def execute(self, plan: ActionPlan) -> AgentResponse:
        if not self.is_initialized:
            await self.initialize()
        return await self.planner.execute_plan(plan)

    async def reflect(self, response: AgentResponse) -> LearningUpdate:
        async with self._memory_lock:
            return await self._reflect(response)

    async def _reflect(self, response: AgentResponse) -> LearningUpdate:
        if response.confidence > 0.8:
            feedback = Feedback.POSITIVE
        elif response.confidence < 0.4:
            feedback = Feedback.NEGATIVE
        else:
            feedback = Feedback.NEUTRAL

        try:
            await self.update_memory(response)
        except Exception as e:
            logger.error(f"Reflection failed for agent {self.id}: {e}")
            return LearningUpdate(
                feedback=Feedback.NEUTRAL,
                context=f"Agent {self.id} could not record the interaction",
            )

        return LearningUpdate(
            patterns={},
            preferences={},
            feedback=feedback,
            context=f"Agent {self.id} processed request with confidence {response.confidence}",
        )

    async def update_memory(self, response: AgentResponse) -> None:
        entry = MemoryEntry(
            id=create_unique_id("memory"),
            content=response.content,
            timestamp=response.timestamp,
            importance=response.confidence,
            tags=["response", self.id],
        )
        self.memory.remember(entry, cap=self.memory_cap)

    async def process_input(self, user_input: UserInput) -> AgentResponse:
        """
        Run the full pipeline for one input.

        Always returns a well-formed response: stage failures become an error
        response with zero confidence. Configuration errors are re-raised.
        """
        async with self._memory_lock:
            try:
                analysis = await self.analyze(user_input)
                plan = await self.plan(analysis)
                response = await self.execute(plan)
            except InvalidConfiguration:
                raise
            except Exception as e:
                logger.error(f"Error processing input in agent {self.id}: {e}")
                return AgentResponse(
                    id=create_unique_id("error"),
                    agent_id=self.id,
                    content=f"I encountered an error while processing your request: {e}",
                    type=ResponseType.TEXT,
                    confidence=0.0,
                    metadata={"error": True},
                    reasoning="Error occurred during processing",
                )

            await self._reflect(response)
            return response

    async def cleanup(self) -> None:
        logger.info(f"Agent {self.id} cleaning up")
        self.is_initialized = False

    def get_status(self) -> AgentStatus:
        return AgentStatus(
            id=self.id,
            name=self.name,
            initialized=self.is_initialized,
            capabilities=list(self.capabilities),
            memory_count=len(self.memory.memories),
        )

    def add_tool(self, tool: Tool) -> None:
        self.tools[tool.id] = tool

    def get_tool(self, tool_id: str) -> Optional[Tool]:
        return self.tools.get(tool_id)

    def _full_prompt(self, prompt: str) -> str:
        return f"{self.system_prompt}\n\n{prompt}"

    async def generate_response(self, prompt: str) -> str:
        return await self.provider.generate_response(self._full_prompt(prompt), self.config)

    def stream_response(self, prompt: str) -> AsyncIterator[str]:
        return self.provider.stream_response(self._full_prompt(prompt), self.config)
