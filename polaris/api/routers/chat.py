import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from polaris.agent import AgentRegistry, BaseAgent, calculate_confidence
from polaris.api.dependencies import (
    ChatSession,
    get_agent_registry,
    get_chat_session,
    get_model_manager,
)
from polaris.api.schemas.chat import (
    AgentSummary,
    ChatRequest,
    ChatResponse,
    ChatResponseBody,
    ChatStatusResponse,
    ProviderSummary,
)
from polaris.logger import logger
from polaris.models import AgentResponse, UserInput, create_unique_id
from polaris.models.base import utcnow
from polaris.providers import BaseModelProvider, ModelManager, SupportsModelSelection

router = APIRouter()


async def resolve_provider(
    manager: ModelManager,
    registry: AgentRegistry,
    session: ChatSession,
    provider_id: Optional[str],
    api_key: Optional[str],
) -> BaseModelProvider:
    """Pick the provider for a request, authenticating it and resetting agents on a switch."""
    if provider_id:
        provider = manager.get_provider(provider_id)
        if api_key and not await manager.authenticate_provider(provider_id, api_key):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Failed to authenticate with {provider_id}",
            )
    else:
        provider = await manager.get_best_available_provider() or manager.default_provider
        if provider is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="No model providers available",
            )

    if provider.type == "remote" and not provider.get_status().authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Provider {provider.id} requires authentication. Please provide an API key.",
        )

    if session.last_provider_id is not None and session.last_provider_id != provider.id:
        logger.info(f"Provider switched from {session.last_provider_id} to {provider.id}, clearing agents")
        manager.metrics_tracker.record_event(
            "provider_switch", source=session.last_provider_id, target=provider.id
        )
        await registry.clear_all()
    session.last_provider_id = provider.id
    return provider


def _summary(agent: BaseAgent) -> AgentSummary:
    return AgentSummary(id=agent.id, name=agent.name, status=agent.get_status())


def _envelope(**data) -> str:
    return json.dumps(data, default=str) + "\n"


async def stream_chat(
    agent: BaseAgent, provider: BaseModelProvider, user_input: UserInput
) -> AsyncIterator[str]:
    """Run analyze and plan, then stream the execution as NDJSON envelopes."""
    response_id = create_unique_id("response")
    model_name = provider.model if isinstance(provider, SupportsModelSelection) else None
    yield _envelope(
        type="start",
        id=response_id,
        agent_id=agent.id,
        agent_name=agent.name,
        model_provider=provider.id,
        model_name=model_name,
        timestamp=utcnow().isoformat(),
    )

    try:
        analysis = await agent.analyze(user_input)
        plan = await agent.plan(analysis)

        parts = []
        async for fragment in agent.planner.stream_execution(plan):
            parts.append(fragment)
            yield _envelope(type="content", content=fragment)

        full_content = "".join(parts)
        confidence = calculate_confidence(plan, full_content)
        response = AgentResponse(
            id=response_id,
            agent_id=agent.id,
            content=full_content,
            confidence=confidence,
            metadata={"plan_id": plan.id, "steps_executed": len(plan.steps), "streamed": True},
            reasoning=f"Analyzed intent, created {len(plan.steps)} step plan, streamed response",
        )
        await agent.reflect(response)
        yield _envelope(
            type="end",
            full_content=full_content,
            confidence=confidence,
            metadata=response.metadata,
        )
    except Exception as e:
        logger.error(f"Chat streaming error: {e}")
        yield _envelope(type="error", error=str(e))


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    manager: ModelManager = Depends(get_model_manager),
    registry: AgentRegistry = Depends(get_agent_registry),
    session: ChatSession = Depends(get_chat_session),
):
    """Send a message to an agent."""
    provider = await resolve_provider(manager, registry, session, request.provider, request.api_key)
    agent_id = request.agent_id or registry.default_agent_id()
    agent = await registry.get_or_create(agent_id, provider, manager.default_model_config())

    user_input = UserInput(content=request.message)

    if request.stream:
        return StreamingResponse(
            stream_chat(agent, provider, user_input), media_type="application/x-ndjson"
        )

    response = await agent.process_input(user_input)
    return ChatResponse(
        success=True,
        response=ChatResponseBody(
            id=response.id,
            content=response.content,
            confidence=response.confidence,
            reasoning=response.reasoning,
            timestamp=response.timestamp,
            metadata=response.metadata,
        ),
        agent=_summary(agent),
    )


@router.get("", response_model=ChatStatusResponse)
async def chat_status(
    manager: ModelManager = Depends(get_model_manager),
    registry: AgentRegistry = Depends(get_agent_registry),
):
    """Provider status and the currently active agents."""
    statuses = await manager.get_providers_status()
    return ChatStatusResponse(
        success=True,
        providers=[
            ProviderSummary(id=p.id, name=p.name, type=p.type, status=statuses.get(p.id, {}))
            for p in manager.providers
        ],
        agents=[_summary(agent) for agent in registry.active_agents()],
    )
