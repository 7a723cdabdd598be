import pytest

from polaris.agent import GeneralAssistantAgent
from polaris.exceptions import ProviderUnavailable
from polaris.models import UserInput


def tool_aware_reply(prompt: str) -> str:
    if "creative ideas for" in prompt:
        return "1. A star\n2. A compass"
    if "step-by-step guide for" in prompt:
        return "Step 1: gather flour"
    if "Analyze the following text" in prompt:
        return "Summary: a request"
    return "Full pipeline answer"


@pytest.fixture
def provider(make_provider):
    return make_provider(script=tool_aware_reply)


@pytest.fixture
def agent(provider, model_config):
    return GeneralAssistantAgent(provider, model_config)


@pytest.mark.parametrize(
    "message, tool_id, confidence, content",
    [
        ("Brainstorm names for my bakery", "brainstorming", 0.8, "1. A star\n2. A compass"),
        ("give me ideas for a logo", "brainstorming", 0.8, "1. A star\n2. A compass"),
        ("How to bake bread", "step-by-step", 0.85, "Step 1: gather flour"),
        ("explain step by step", "step-by-step", 0.85, "Step 1: gather flour"),
        ("Please analyze this paragraph", "text-analysis", 0.75, "Summary: a request"),
    ],
)
async def test_specialized_routing(agent, message, tool_id, confidence, content):
    response = await agent.process_specialized_input(UserInput(content=message))
    assert response.confidence == confidence
    assert response.content == content
    assert response.metadata == {"tool": tool_id, "specialized": True}


async def test_brainstorming_prompt(agent, provider):
    await agent.process_specialized_input(UserInput(content="brainstorm ideas for a logo"))
    assert provider.prompts[-1].endswith("Generate 5 creative ideas for: brainstorm ideas for a logo")


async def test_unmatched_input_uses_full_pipeline(agent, provider):
    response = await agent.process_specialized_input(UserInput(content="What's the weather like?"))
    assert response.content == "Full pipeline answer"
    assert "tool" not in response.metadata
    assert len(provider.prompts) == 3


async def test_tool_failure_falls_back_to_pipeline(make_provider, model_config):
    provider = make_provider(script=[ProviderUnavailable("down"), "Full pipeline answer"])
    agent = GeneralAssistantAgent(provider, model_config)

    response = await agent.process_specialized_input(UserInput(content="brainstorm a slogan"))

    assert "tool" not in response.metadata
    assert response.content == "Full pipeline answer"


async def test_tool_parameters_are_described(agent):
    await agent.initialize()
    brainstorm = agent.get_tool("brainstorming")
    described = brainstorm.describe()
    assert described["parameters"]["quantity"] == {"type": "number", "default": 5}
    assert "handler" not in described
    assert agent.get_tool("missing") is None


def test_capabilities_description(agent):
    assert "General Assistant" in agent.capabilities_description()


async def test_stream_user_input(make_provider, model_config):
    provider = make_provider(stream_chunks=["Hi", " there"])
    agent = GeneralAssistantAgent(provider, model_config)

    fragments = [f async for f in agent.stream_user_input(UserInput(content="hello"))]

    assert fragments == ["Hi", " there"]
    assert provider.prompts[0].endswith("\n\nUser: hello")
