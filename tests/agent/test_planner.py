import json

import pytest

from polaris.agent.planner import APOLOGY, TaskPlanner, calculate_confidence
from polaris.exceptions import InvalidConfiguration, ProviderUnavailable
from polaris.models import ActionPlan, ActionStep, Analysis, ModelConfig, UserInput


def make_plan(step_count: int, requires_approval: bool = False) -> ActionPlan:
    return ActionPlan(
        id="plan_test",
        steps=[ActionStep(id=f"s{i}", action=f"step {i}") for i in range(step_count)],
        requires_approval=requires_approval,
    )


@pytest.fixture
def planner_for(model_config):
    def build(provider, config=None):
        return TaskPlanner(provider, config or model_config, "test-agent", "You are a test agent.")

    return build


# ==================== calculate_confidence ====================

@pytest.mark.parametrize(
    "step_count, text_length, approval, expected",
    [
        (1, 600, False, 0.9),
        (1, 50, False, 0.7),
        (2, 200, False, 0.7),
        (4, 50, True, 0.4),
        (1, 600, True, 0.8),
        (5, 600, False, 0.7),
    ],
)
def test_calculate_confidence(step_count, text_length, approval, expected):
    plan = make_plan(step_count, approval)
    assert calculate_confidence(plan, "x" * text_length) == expected


@pytest.mark.parametrize("step_count", [0, 1, 1000])
@pytest.mark.parametrize("text", ["", "short", "y" * 1_000_000])
@pytest.mark.parametrize("approval", [False, True])
def test_confidence_stays_in_bounds(step_count, text, approval):
    confidence = calculate_confidence(make_plan(step_count, approval), text)
    assert 0.0 <= confidence <= 1.0


# ==================== analyze_task ====================

async def test_analyze_task_parses_structured_output(make_provider, planner_for):
    planner = planner_for(make_provider())
    analysis = await planner.analyze_task(UserInput(content="brainstorm ideas for a logo"))
    assert analysis.intent == "Brainstorm logo ideas"
    assert analysis.context["domain"] == "design"


async def test_analyze_task_prompt_includes_input(make_provider, planner_for):
    provider = make_provider()
    await planner_for(provider).analyze_task(UserInput(content="What is 2+2?"))
    assert 'User Input: "What is 2+2?"' in provider.prompts[0]
    assert provider.prompts[0].startswith("You are a test agent.")


@pytest.mark.parametrize("reply", ["no json here", ProviderUnavailable("down"), '{"confidence": 3}'])
async def test_analyze_task_fallback(make_provider, planner_for, reply):
    planner = planner_for(make_provider(script=[reply]))
    analysis = await planner.analyze_task(UserInput(content="hi"))
    assert analysis.intent == "General assistance request"
    assert analysis.confidence == 0.3
    assert analysis.context == {"domain": "general", "complexity": "medium", "urgency": "medium"}


async def test_analyze_task_propagates_invalid_configuration(make_provider, planner_for):
    planner = planner_for(make_provider(), ModelConfig(temperature=2))
    with pytest.raises(InvalidConfiguration):
        await planner.analyze_task(UserInput(content="hi"))


# ==================== create_plan ====================

async def test_create_plan_parses_plan(make_provider, planner_for):
    planner = planner_for(make_provider())
    plan = await planner.create_plan(Analysis(intent="Brainstorm logo ideas", confidence=0.9))
    assert plan.id == "plan_logo"
    assert [step.action for step in plan.steps] == ["List logo concepts"]


async def test_create_plan_fallback(make_provider, planner_for):
    planner = planner_for(make_provider(script=["garbage"]))
    first = await planner.create_plan(Analysis(intent="Fix my bike"))
    second = await planner.create_plan(Analysis(intent="Fix my bike"))

    assert first.id.startswith("fallback_plan")
    assert first.id != second.id
    assert len(first.steps) == 1
    assert first.steps[0].action == "Provide general assistance"
    assert first.steps[0].parameters == {"intent": "Fix my bike"}


async def test_create_plan_with_dangling_dependency_falls_back(make_provider, planner_for):
    reply = json.dumps({"steps": [{"id": "a", "action": "x", "dependencies": ["missing"]}]})
    plan = await planner_for(make_provider(script=[reply])).create_plan(Analysis(intent="x"))
    assert plan.steps[0].action == "Provide general assistance"


async def test_create_plan_fills_in_empty_steps(make_provider, planner_for):
    reply = json.dumps({"id": "empty", "steps": [], "estimatedDuration": 1})
    plan = await planner_for(make_provider(script=[reply])).create_plan(Analysis(intent="x"))
    assert plan.id == "empty"
    assert [step.action for step in plan.steps] == ["Provide helpful response"]


# ==================== execute_plan ====================

async def test_execute_plan(make_provider, planner_for):
    provider = make_provider()
    response = await planner_for(provider).execute_plan(make_plan(1))

    assert response.agent_id == "test-agent"
    assert response.confidence == 0.9
    assert response.metadata == {"plan_id": "plan_test", "steps_executed": 1, "estimated_duration": 1.0}
    assert response.reasoning == "Analyzed intent, created 1 step plan, executed with 90% confidence"
    assert "- Step: step 0" in provider.prompts[0]


async def test_execute_plan_failure_apologizes(make_provider, planner_for):
    planner = planner_for(make_provider(script=[ProviderUnavailable("down")]))
    response = await planner.execute_plan(make_plan(2))
    assert response.content == APOLOGY
    assert response.confidence == 0.2
    assert response.metadata == {"error": True, "plan_id": "plan_test"}


async def test_execute_plan_propagates_invalid_configuration(make_provider, planner_for):
    planner = planner_for(make_provider(), ModelConfig(max_tokens=0))
    with pytest.raises(InvalidConfiguration):
        await planner.execute_plan(make_plan(1))


# ==================== stream_execution ====================

async def test_stream_execution(make_provider, planner_for):
    provider = make_provider(stream_chunks=["Hello", " world"])
    fragments = [f async for f in planner_for(provider).stream_execution(make_plan(1))]
    assert fragments == ["Hello", " world"]
    assert provider.stream_closed


async def test_stream_execution_failure_on_first_pull(make_provider, planner_for):
    provider = make_provider(stream_chunks=[ProviderUnavailable("down")])
    fragments = [f async for f in planner_for(provider).stream_execution(make_plan(1))]
    assert len(fragments) == 1
    assert fragments[0].startswith("I apologize")


async def test_stream_execution_reports_invalid_configuration(make_provider, planner_for):
    planner = planner_for(make_provider(stream_chunks=["never"]), ModelConfig(top_p=5))
    fragments = [f async for f in planner.stream_execution(make_plan(1))]
    assert len(fragments) == 1
    assert "Top P must be between 0 and 1" in fragments[0]


async def test_stream_execution_abandoned_closes_provider_stream(make_provider, planner_for):
    provider = make_provider(stream_chunks=["a", "b", "c"])
    stream = planner_for(provider).stream_execution(make_plan(1))
    assert await stream.__anext__() == "a"
    await stream.aclose()
    assert provider.stream_closed
