"""Model adapter: logical model id + tuning -> concrete invocation descriptor."""

from collections.abc import Callable, Iterable
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel

from clark.models.llm import ModelInfo, ModelOptions, ModelSpec, ModelTuning, ReasoningEffort
from clark.utils.logging import get_logger

logger = get_logger(__name__)

FINE_GRAINED_TOOL_STREAMING = "fine-grained-tool-streaming-2025-05-14"

_ANTHROPIC_EFFORTS = frozenset({ReasoningEffort.LOW, ReasoningEffort.MEDIUM, ReasoningEffort.HIGH})

# Extended thinking budget per effort level
THINKING_BUDGETS: dict[ReasoningEffort, int] = {
    ReasoningEffort.LOW: 2_048,
    ReasoningEffort.MEDIUM: 8_192,
    ReasoningEffort.HIGH: 16_384,
}

SUPPORTED_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec(
        id="claude-opus-4-5-20251101",
        label="Claude Opus 4.5",
        supports_reasoning=True,
        supported_efforts=_ANTHROPIC_EFFORTS,
        max_output_tokens=32_000,
    ),
    ModelSpec(
        id="claude-sonnet-4-5-20250929",
        label="Claude Sonnet 4.5",
        supports_reasoning=True,
        supported_efforts=_ANTHROPIC_EFFORTS,
        max_output_tokens=32_000,
    ),
    ModelSpec(
        id="claude-3-5-haiku-20241022",
        label="Claude Haiku 3.5",
        max_output_tokens=8_192,
    ),
)

DEFAULT_MODEL_ID = "claude-opus-4-5-20251101"

# Gateway-style ids still sent by older clients
LEGACY_MODEL_IDS: dict[str, str] = {
    "anthropic/claude-opus-4.5": "claude-opus-4-5-20251101",
    "anthropic/claude-opus-4": "claude-opus-4-5-20251101",
    "anthropic/claude-sonnet-4.5": "claude-sonnet-4-5-20250929",
}

HandleFactory = Callable[[ModelSpec, dict[str, str], dict[str, Any], int], BaseChatModel]


class UnsupportedModelError(ValueError):
    """Raised when a model id is not in the supported set."""

    def __init__(self, model_id: str):
        super().__init__(f"Unsupported model: {model_id}")
        self.model_id = model_id


class ModelRegistry:
    """Static set of supported models. Never touches the network."""

    def __init__(
        self,
        models: Iterable[ModelSpec] = SUPPORTED_MODELS,
        default_model_id: str = DEFAULT_MODEL_ID,
        aliases: dict[str, str] | None = None,
    ):
        self._models = {spec.id: spec for spec in models}
        self._aliases = dict(LEGACY_MODEL_IDS if aliases is None else aliases)
        if default_model_id not in self._models:
            raise ValueError(f"Default model {default_model_id} is not registered")
        self.default_model_id = default_model_id

    def normalize(self, model_id: str) -> str:
        return self._aliases.get(model_id, model_id)

    def get(self, model_id: str) -> ModelSpec | None:
        return self._models.get(self.normalize(model_id))

    def all_models(self) -> list[ModelSpec]:
        return list(self._models.values())


class ModelAdapter:
    """Resolves model ids into chat model handles plus provider options."""

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        api_key: str | None = None,
        handle_factory: HandleFactory | None = None,
    ):
        self.registry = registry or ModelRegistry()
        self.api_key = api_key
        self._handle_factory = handle_factory or self._create_anthropic_handle

    def resolve(self, model_id: str | None = None, tuning: ModelTuning | None = None) -> ModelOptions:
        """Resolve a model id and optional tuning into invocation options.

        Args:
            model_id: Logical model id, or None for the default model
            tuning: Optional tuning hints such as reasoning effort

        Returns:
            ModelOptions with the bound handle, headers and provider options

        Raises:
            UnsupportedModelError: If the id is not in the registry
        """
        requested = model_id or self.registry.default_model_id
        spec = self.registry.get(requested)
        if spec is None:
            logger.warning(f"Rejecting unsupported model id: {requested}")
            raise UnsupportedModelError(requested)

        headers = {"anthropic-beta": FINE_GRAINED_TOOL_STREAMING}
        provider_options = self._provider_options(spec, tuning)

        max_tokens = spec.max_output_tokens
        thinking = provider_options.get("thinking")
        if thinking:
            max_tokens = max(max_tokens, thinking["budget_tokens"] + 4_096)

        handle = self._handle_factory(spec, headers, provider_options, max_tokens)
        logger.debug(f"Resolved model {requested} -> {spec.id} with options {provider_options}")

        return ModelOptions(spec=spec, handle=handle, headers=headers, provider_options=provider_options)

    def list_available_models(self) -> list[ModelInfo]:
        """List supported models from the static registry."""
        return [ModelInfo(id=spec.id, label=spec.label) for spec in self.registry.all_models()]

    def _provider_options(self, spec: ModelSpec, tuning: ModelTuning | None) -> dict[str, Any]:
        effort = tuning.reasoning_effort if tuning else None
        if effort is None or effort == ReasoningEffort.NONE:
            return {}

        # Unsupported levels are ignored rather than rejected
        if not spec.supports_reasoning or effort not in spec.supported_efforts:
            logger.debug(f"Ignoring reasoning effort {effort} for model {spec.id}")
            return {}

        return {"thinking": {"type": "enabled", "budget_tokens": THINKING_BUDGETS[effort]}}

    def _create_anthropic_handle(
        self, spec: ModelSpec, headers: dict[str, str], provider_options: dict[str, Any], max_tokens: int
    ) -> BaseChatModel:
        kwargs: dict[str, Any] = {**provider_options}
        if self.api_key:
            kwargs["api_key"] = self.api_key

        return ChatAnthropic(
            model=spec.id,
            max_tokens=max_tokens,
            default_headers=headers,
            max_retries=2,
            **kwargs,
        )
