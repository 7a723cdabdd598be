from fastapi import APIRouter, Depends

from polaris.agent import AgentRegistry
from polaris.api.dependencies import get_agent_registry
from polaris.api.schemas.chat import AgentListResponse

router = APIRouter()


@router.get("", response_model=AgentListResponse)
async def list_agents(registry: AgentRegistry = Depends(get_agent_registry)):
    """List the agent types this server can create."""
    return AgentListResponse(
        success=True,
        agents=registry.available_agents(),
        default_agent=registry.default_agent_id(),
    )
