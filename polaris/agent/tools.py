# polaris/agent/tools.py

from typing import Any, Awaitable, Callable, Dict

from pydantic import BaseModel, ConfigDict, Field

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class Tool(BaseModel):
    """A named capability an agent can invoke directly, bypassing the planner."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    handler: ToolHandler = Field(exclude=True)

    async def execute(self, params: Dict[str, Any]) -> Any:
        return await self.handler(params)

    def describe(self) -> Dict[str, Any]:
        return self.model_dump()
