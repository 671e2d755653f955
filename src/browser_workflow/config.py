"""
Configuration for the browser workflow.

Settings are an explicit struct passed into each phase constructor. They can be
built from environment variables with ``WorkflowSettings.from_env`` and any value
can be overridden with keyword arguments.
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from browser_workflow.errors import ConfigurationError


class ProviderKind(str, Enum):
    GOOGLE = "google"
    GATEWAY = "gateway"
    OPENROUTER = "openrouter"
    NIM = "nim"


@dataclass(frozen=True)
class ProviderProfile:
    """Static connection details for one provider."""
    base_url: str
    api_key_env: str
    default_model: str
    default_headers: Dict[str, str] = field(default_factory=dict)


PROVIDER_PROFILES: Dict[ProviderKind, ProviderProfile] = {
    ProviderKind.GOOGLE: ProviderProfile(
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        api_key_env="GOOGLE_API_KEY",
        default_model="gemini-2.5-pro",
    ),
    ProviderKind.GATEWAY: ProviderProfile(
        base_url="https://ai-gateway.vercel.sh/v1",
        api_key_env="AI_GATEWAY_API_KEY",
        default_model="google/gemini-2.5-flash-lite",
    ),
    ProviderKind.OPENROUTER: ProviderProfile(
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
        default_model="minimax/minimax-m2",
        default_headers={"X-Title": "Browser Workflow Agent"},
    ),
    ProviderKind.NIM: ProviderProfile(
        base_url="https://integrate.api.nvidia.com/v1",
        api_key_env="NVIDIA_API_KEY",
        default_model="deepseek-ai/deepseek-r1",
    ),
}

# response_format styles accepted by OpenAI-compatible endpoints.
JSON_MODES = ("json_schema", "json_object", "none")


@dataclass(frozen=True)
class ModelSettings:
    """
    Language model selection for one provider.

    Attributes:
        provider: Provider the model is served by
        model: Model identifier; defaults to the provider's default model
        api_key: API key; defaults to the provider's environment variable
        base_url: Endpoint override
        temperature: Sampling temperature for tool-calling turns
        max_tokens: Completion token limit per call
        json_mode: How structured output is requested from the endpoint
    """
    provider: ProviderKind = ProviderKind.GOOGLE
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    json_mode: str = "json_schema"

    @property
    def profile(self) -> ProviderProfile:
        return PROVIDER_PROFILES[self.provider]

    @property
    def resolved_model(self) -> str:
        return self.model or self.profile.default_model

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or self.profile.base_url).rstrip("/")

    def require_api_key(self) -> str:
        api_key = self.api_key or os.getenv(self.profile.api_key_env)
        if not api_key:
            raise ConfigurationError(
                f"Missing API key for provider '{self.provider.value}': "
                f"set {self.profile.api_key_env} or pass api_key explicitly"
            )
        return api_key


@dataclass(frozen=True)
class ApprovalSettings:
    """
    Approval gate configuration.

    Attributes:
        allowed_domains: Domains (and their subdomains) navigable without approval
        type_text_threshold: Typed text longer than this needs approval
        always_confirm: Tool names that always need approval
        timeout: Seconds to wait for a decision before treating it as a rejection
    """
    allowed_domains: List[str] = field(default_factory=list)
    type_text_threshold: int = 100
    always_confirm: List[str] = field(default_factory=list)
    timeout: float = 300.0


@dataclass(frozen=True)
class WorkflowSettings:
    """
    Complete configuration for a workflow run.

    Attributes:
        model: Model used for execution, evaluation and summarization
        planner_model: Model used for planning; defaults to ``model``
        max_retries: Workflow-level retries after the first execution attempt
        max_steps: Step budget for the execution loop
        approval: Approval gate configuration
        search_api_key: You.com key enabling web search in the summarizer
        tracing_enabled: Whether runs are traced to Opik
        opik_project_name: Opik project for traces
        planning_timeout: Seconds allowed for one planning attempt
        context_timeout: Seconds allowed for one context-gathering attempt
        analyze_failures: Run the error analyzer for poor or failed runs
    """
    model: ModelSettings = field(default_factory=ModelSettings)
    planner_model: Optional[ModelSettings] = None
    max_retries: int = 2
    max_steps: int = 100
    approval: ApprovalSettings = field(default_factory=ApprovalSettings)
    search_api_key: Optional[str] = None
    tracing_enabled: bool = False
    opik_project_name: str = "browser-workflow"
    planning_timeout: float = 30.0
    context_timeout: float = 10.0
    analyze_failures: bool = True

    @property
    def resolved_planner_model(self) -> ModelSettings:
        return self.planner_model or self.model

    def with_overrides(self, **overrides) -> "WorkflowSettings":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, **overrides) -> "WorkflowSettings":
        """
        Build settings from environment variables.

        Args:
            **overrides: Field values that take precedence over the environment

        Returns:
            WorkflowSettings instance

        Raises:
            ConfigurationError: If WORKFLOW_PROVIDER names an unknown provider
        """
        provider_name = os.getenv("WORKFLOW_PROVIDER", ProviderKind.GOOGLE.value).lower()
        try:
            provider = ProviderKind(provider_name)
        except ValueError as e:
            known = ", ".join(kind.value for kind in ProviderKind)
            raise ConfigurationError(f"Unknown provider '{provider_name}' (expected one of: {known})") from e

        model = ModelSettings(provider=provider, model=os.getenv("WORKFLOW_MODEL") or None)
        planner_model = None
        if os.getenv("WORKFLOW_PLANNER_MODEL"):
            planner_model = replace(model, model=os.getenv("WORKFLOW_PLANNER_MODEL"))

        allowed_domains = [
            domain.strip().lower()
            for domain in os.getenv("WORKFLOW_ALLOWED_DOMAINS", "").split(",")
            if domain.strip()
        ]
        approval = ApprovalSettings(
            allowed_domains=allowed_domains,
            type_text_threshold=int(os.getenv("WORKFLOW_TYPE_APPROVAL_THRESHOLD", "100")),
            timeout=float(os.getenv("WORKFLOW_APPROVAL_TIMEOUT", "300")),
        )

        settings = cls(
            model=model,
            planner_model=planner_model,
            max_retries=int(os.getenv("WORKFLOW_MAX_RETRIES", "2")),
            max_steps=int(os.getenv("WORKFLOW_MAX_STEPS", "100")),
            approval=approval,
            search_api_key=os.getenv("YOU_API_KEY") or None,
            tracing_enabled=os.getenv("OPIK_ENABLED", "").lower() in ("1", "true", "yes"),
            opik_project_name=os.getenv("OPIK_PROJECT_NAME", "browser-workflow"),
        )
        return replace(settings, **overrides) if overrides else settings
