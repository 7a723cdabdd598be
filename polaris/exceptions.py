"""
Error taxonomy for Polaris.

Only configuration errors and registry lookup misses are meant to reach the
caller. Provider and extraction failures inside the reasoning pipeline are
converted into degraded responses by the planner and the agent.
"""


class PolarisError(Exception):
    """Base class for all Polaris errors."""


class ProviderUnavailable(PolarisError):
    """The backend is unreachable, unauthenticated or answered with an error."""


class InvalidConfiguration(PolarisError):
    """A model configuration is outside its documented bounds."""


class MalformedStructuredOutput(PolarisError):
    """Every extraction stage failed to recover a structured value."""

    def __init__(self, raw_text: str, cleaned_text: str, reason: str = ""):
        self.raw_text = raw_text
        self.cleaned_text = cleaned_text
        self.reason = reason
        message = "Could not extract structured output from model text"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnknownAgentType(PolarisError):
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Unknown agent type: {agent_id}")


class UnknownProvider(PolarisError):
    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider {provider_id} not found")
