from typing import Any, AsyncIterator, Dict

from polaris.agent.base import BaseAgent
from polaris.agent.tools import Tool
from polaris.logger import logger
from polaris.models import (
    AgentResponse,
    LongTermMemory,
    ModelConfig,
    ResponseType,
    UserInput,
    create_unique_id,
)
from polaris.providers.base import BaseModelProvider

GENERAL_ASSISTANT_ID = "general-assistant"

SYSTEM_PROMPT = """You are a helpful, intelligent general assistant named Polaris. You are part of a multi-agent system designed to help users with various tasks and questions.

Your core capabilities include:
- General question answering and information retrieval
- Task planning and problem-solving
- Creative writing and brainstorming
- Basic analysis and reasoning
- Friendly conversation and support

Key principles:
1. Be helpful, accurate, and honest
2. Break down complex problems into manageable steps
3. Ask clarifying questions when needed
4. Provide reasoning for your responses
5. Acknowledge when you don't know something
6. Be respectful and supportive
7. Focus on being genuinely useful to the user

When analyzing tasks, identify the user's primary intent and consider complexity and urgency.
When planning actions, break complex tasks into clear steps and note dependencies between them.
When executing plans, follow your planned steps and give clear, actionable responses.

Remember: You're designed to be a reasoning agent that thinks through problems systematically, not just a simple chatbot.
"""

CAPABILITIES_DESCRIPTION = """I'm your General Assistant, part of the Polaris AI system. Here's what I can help you with:

**Core Capabilities:**
- Answer questions and provide information
- Help with problem-solving and analysis
- Break down complex tasks into manageable steps
- Generate creative ideas and brainstorm solutions
- Assist with planning and organization

**How I Work:**
1. **Analyze** your request to understand your intent
2. **Plan** the best approach to help you
3. **Execute** the plan with appropriate tools and reasoning
4. **Reflect** on the interaction to improve future responses
"""


class GeneralAssistantAgent(BaseAgent):
    """General-purpose agent with brainstorming, step-by-step and text-analysis tools."""

    def __init__(self, provider: BaseModelProvider, config: ModelConfig):
        super().__init__(
            GENERAL_ASSISTANT_ID,
            "General Assistant",
            "A helpful general-purpose assistant that can help with a wide variety of tasks and questions",
            [
                "question-answering",
                "task-planning",
                "problem-solving",
                "creative-writing",
                "conversation",
                "analysis",
                "reasoning",
            ],
            SYSTEM_PROMPT,
            provider,
            config,
        )

    def create_memory(self) -> LongTermMemory:
        return LongTermMemory(
            user_id="",
            agent_id=self.id,
            patterns={
                "preferred_response_style": "detailed",
                "common_topics": [],
                "user_expertise": "general",
            },
            preferences={
                "response_length": "medium",
                "technical_level": "moderate",
                "include_examples": True,
                "show_reasoning": True,
            },
        )

    async def initialize_tools(self) -> None:
        self.add_tool(
            Tool(
                id="text-analysis",
                name="Text Analysis",
                description="Analyze text for sentiment, key points, and insights",
                parameters={
                    "text": {"type": "string", "required": True},
                    "analysis_type": {"type": "string", "enum": ["sentiment", "summary", "keywords"]},
                },
                handler=self._analyze_text,
            )
        )
        self.add_tool(
            Tool(
                id="brainstorming",
                name="Brainstorming",
                description="Generate creative ideas and suggestions",
                parameters={
                    "topic": {"type": "string", "required": True},
                    "quantity": {"type": "number", "default": 5},
                },
                handler=self._brainstorm,
            )
        )
        self.add_tool(
            Tool(
                id="step-by-step",
                name="Step-by-Step Guide",
                description="Break down complex tasks into manageable steps",
                parameters={
                    "task": {"type": "string", "required": True},
                    "difficulty": {"type": "string", "enum": ["beginner", "intermediate", "advanced"]},
                },
                handler=self._step_by_step,
            )
        )

    async def load_memory(self) -> None:
        logger.info(f"Loading memory for general assistant {self.id}")

    async def _analyze_text(self, params: Dict[str, Any]) -> str:
        analysis_type = params.get("analysis_type", "summary")
        return await self.generate_response(
            f'Analyze the following text for {analysis_type}: "{params["text"]}"'
        )

    async def _brainstorm(self, params: Dict[str, Any]) -> str:
        quantity = params.get("quantity", 5)
        return await self.generate_response(f"Generate {quantity} creative ideas for: {params['topic']}")

    async def _step_by_step(self, params: Dict[str, Any]) -> str:
        difficulty = params.get("difficulty", "intermediate")
        return await self.generate_response(
            f"Create a {difficulty} step-by-step guide for: {params['task']}"
        )

    async def process_specialized_input(self, user_input: UserInput) -> AgentResponse:
        """
        Route recognisable requests straight to a tool.

        Anything not matched, and any tool failure, goes through the full
        reasoning pipeline instead.
        """
        if not self.is_initialized:
            await self.initialize()

        content = user_input.content.lower()
        if "brainstorm" in content or "ideas" in content:
            return await self._run_tool(
                user_input,
                "brainstorming",
                {"topic": user_input.content, "quantity": 5},
                confidence=0.8,
                prefix="brainstorm",
                reasoning="Detected brainstorming request, used specialized brainstorming tool",
            )
        if "step by step" in content or "how to" in content:
            return await self._run_tool(
                user_input,
                "step-by-step",
                {"task": user_input.content, "difficulty": "intermediate"},
                confidence=0.85,
                prefix="steps",
                reasoning="Detected step-by-step request, used specialized planning tool",
            )
        if "analyze" in content or "analysis" in content:
            return await self._run_tool(
                user_input,
                "text-analysis",
                {"text": user_input.content, "analysis_type": "summary"},
                confidence=0.75,
                prefix="analysis",
                reasoning="Detected analysis request, used specialized analysis tool",
            )
        return await self.process_input(user_input)

    async def _run_tool(
        self,
        user_input: UserInput,
        tool_id: str,
        params: Dict[str, Any],
        confidence: float,
        prefix: str,
        reasoning: str,
    ) -> AgentResponse:
        tool = self.get_tool(tool_id)
        if tool is None:
            return await self.process_input(user_input)

        try:
            result = await tool.execute(params)
        except Exception as e:
            logger.warning(f"Tool {tool_id} failed, falling back to full pipeline: {e}")
            return await self.process_input(user_input)

        return AgentResponse(
            id=create_unique_id(prefix),
            agent_id=self.id,
            content=result if isinstance(result, str) else str(result),
            type=ResponseType.TEXT,
            confidence=confidence,
            metadata={"tool": tool_id, "specialized": True},
            reasoning=reasoning,
        )

    def capabilities_description(self) -> str:
        return CAPABILITIES_DESCRIPTION

    def stream_user_input(self, user_input: UserInput) -> AsyncIterator[str]:
        return self.stream_response(f"User: {user_input.content}")
