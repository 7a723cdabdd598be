"""
Task planner implementing the analyze -> plan -> execute protocol.

Each stage asks the provider for structured output and degrades to a fixed
fallback when the backend fails or returns something unparseable. Only
configuration errors escape the blocking stages.
"""

import json
from typing import AsyncIterator

from polaris.exceptions import InvalidConfiguration
from polaris.logger import logger
from polaris.models import (
    ActionPlan,
    ActionStep,
    AgentResponse,
    Analysis,
    ModelConfig,
    ResponseType,
    UserInput,
    create_unique_id,
)
from polaris.providers.base import BaseModelProvider
from polaris.utils.extraction import extract_model

BASE_CONFIDENCE = 0.7
ERROR_CONFIDENCE = 0.2
APOLOGY = (
    "I apologize, but I encountered an error while processing your request. "
    "Let me try to help you in a different way."
)

ANALYSIS_PROMPT = """{system_prompt}

Please analyze the following user input and provide a structured analysis:

User Input: "{content}"
Input Type: {input_type}
Timestamp: {timestamp}

Provide an analysis in the following JSON format:
{{
  "intent": "primary purpose or goal of the user",
  "confidence": number between 0-1 indicating how certain you are about the intent,
  "entities": {{
    "key_entities": "identified important entities, concepts, or data points"
  }},
  "context": {{
    "domain": "what domain or area this relates to",
    "complexity": "low|medium|high",
    "urgency": "low|medium|high"
  }},
  "previousConversation": ["relevant context from previous messages if any"]
}}

Return only the JSON object, no additional text.
"""

PLANNING_PROMPT = """{system_prompt}

Based on the following analysis, create a detailed action plan:

Analysis:
- Intent: {intent}
- Confidence: {confidence}
- Entities: {entities}
- Context: {context}

Create a step-by-step action plan in the following JSON format:
{{
  "id": "unique_plan_id",
  "steps": [
    {{
      "id": "step_1",
      "action": "description of what to do",
      "parameters": {{
        "key": "value"
      }},
      "dependencies": [],
      "estimatedDuration": minutes_as_number
    }}
  ],
  "estimatedDuration": total_minutes_as_number,
  "requiresApproval": boolean_if_action_needs_user_approval
}}

Return only the JSON object, no additional text.
"""

EXECUTION_PROMPT = """{system_prompt}

Execute the following action plan and provide a helpful response:

Plan ID: {plan_id}
Steps to execute:
{steps}
{details}
Please execute this plan and provide a comprehensive, helpful response to the user.
Include your reasoning process and be specific about what you're doing.
"""


def calculate_confidence(plan: ActionPlan, text: str) -> float:
    """
    Heuristic confidence for an executed plan.

    Simple plans and longer answers score higher; plans needing approval
    score lower. The result is clamped to [0, 1].
    """
    confidence = BASE_CONFIDENCE

    if len(plan.steps) == 1:
        confidence += 0.1
    elif len(plan.steps) > 3:
        confidence -= 0.1

    if len(text) > 500:
        confidence += 0.1
    elif len(text) < 100:
        confidence -= 0.1

    if plan.requires_approval:
        confidence -= 0.1

    return round(max(0.0, min(1.0, confidence)), 4)


class TaskPlanner:
    """Runs the reasoning stages for one agent against one provider."""

    def __init__(
        self,
        provider: BaseModelProvider,
        config: ModelConfig,
        agent_id: str,
        system_prompt: str,
    ):
        self.provider = provider
        self.config = config
        self.agent_id = agent_id
        self.system_prompt = system_prompt

    async def analyze_task(self, user_input: UserInput) -> Analysis:
        prompt = ANALYSIS_PROMPT.format(
            system_prompt=self.system_prompt,
            content=user_input.content,
            input_type=user_input.type.value,
            timestamp=user_input.timestamp.isoformat(),
        )
        try:
            response = await self.provider.generate_response(prompt, self.config)
            return extract_model(response, Analysis)
        except InvalidConfiguration:
            raise
        except Exception as e:
            logger.error(f"Error analyzing task: {e}")
            return Analysis(
                intent="General assistance request",
                confidence=0.3,
                entities={},
                context={"domain": "general", "complexity": "medium", "urgency": "medium"},
                previous_conversation=[],
            )

    async def create_plan(self, analysis: Analysis) -> ActionPlan:
        prompt = PLANNING_PROMPT.format(
            system_prompt=self.system_prompt,
            intent=analysis.intent,
            confidence=analysis.confidence,
            entities=json.dumps(analysis.entities, default=str),
            context=json.dumps(analysis.context, default=str),
        )
        try:
            response = await self.provider.generate_response(prompt, self.config)
            plan = extract_model(response, ActionPlan)
        except InvalidConfiguration:
            raise
        except Exception as e:
            logger.error(f"Error creating plan: {e}")
            return ActionPlan(
                id=create_unique_id("fallback_plan"),
                steps=[
                    ActionStep(
                        id="fallback_step",
                        action="Provide general assistance",
                        parameters={"intent": analysis.intent},
                        estimated_duration=2,
                    )
                ],
                estimated_duration=2,
                requires_approval=False,
            )

        if not plan.steps:
            default_step = ActionStep(
                id="default_step", action="Provide helpful response", estimated_duration=1
            )
            plan = plan.model_copy(update={"steps": [default_step]})
        return plan

    def build_execution_prompt(self, plan: ActionPlan, include_details: bool = True) -> str:
        steps = "\n".join(
            f"- Step: {step.action}\n- Parameters: {json.dumps(step.parameters, default=str)}"
            for step in plan.steps
        )
        details = ""
        if include_details:
            details = (
                f"\nEstimated Duration: {plan.estimated_duration} minutes\n"
                f"Requires Approval: {str(plan.requires_approval).lower()}\n"
                "\nIf the plan requires approval, ask the user for confirmation before proceeding.\n"
            )
        return EXECUTION_PROMPT.format(
            system_prompt=self.system_prompt,
            plan_id=plan.id,
            steps=steps,
            details=details,
        )

    async def execute_plan(self, plan: ActionPlan) -> AgentResponse:
        prompt = self.build_execution_prompt(plan)
        try:
            text = await self.provider.generate_response(prompt, self.config)
        except InvalidConfiguration:
            raise
        except Exception as e:
            logger.error(f"Error executing plan {plan.id}: {e}")
            return AgentResponse(
                id=create_unique_id("error_response"),
                agent_id=self.agent_id,
                content=APOLOGY,
                type=ResponseType.TEXT,
                confidence=ERROR_CONFIDENCE,
                metadata={"error": True, "plan_id": plan.id},
                reasoning="Error occurred during plan execution, providing fallback response",
            )

        confidence = calculate_confidence(plan, text)
        return AgentResponse(
            id=create_unique_id("response"),
            agent_id=self.agent_id,
            content=text,
            type=ResponseType.TEXT,
            confidence=confidence,
            metadata={
                "plan_id": plan.id,
                "steps_executed": len(plan.steps),
                "estimated_duration": plan.estimated_duration,
            },
            reasoning=(
                f"Analyzed intent, created {len(plan.steps)} step plan, "
                f"executed with {round(confidence * 100)}% confidence"
            ),
        )

    async def stream_execution(self, plan: ActionPlan) -> AsyncIterator[str]:
        """
        Stream the execution of a plan as cleaned text fragments.

        Never raises: a failure, whether on the first pull or mid-stream,
        ends the stream with a single apology fragment.
        """
        prompt = self.build_execution_prompt(plan, include_details=False)
        stream = None
        try:
            stream = self.provider.stream_response(prompt, self.config)
            async for fragment in stream:
                yield fragment
        except Exception as e:
            logger.error(f"Error streaming execution of plan {plan.id}: {e}")
            yield f"I apologize, but I encountered an error while processing your request: {e}"
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
