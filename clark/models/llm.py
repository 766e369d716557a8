"""Model descriptors and per-turn usage types (provider-agnostic)."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ReasoningEffort(StrEnum):
    """Hint for how much reasoning a model should spend."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class StopReason(StrEnum):
    """How an agent turn ended."""

    FINISHED = "finished"
    STEP_LIMIT_EXCEEDED = "step_limit_exceeded"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass(frozen=True)
class ModelSpec:
    """Static registry entry for a supported model."""

    id: str
    label: str
    provider: str = "anthropic"
    supports_reasoning: bool = False
    supported_efforts: frozenset[ReasoningEffort] = frozenset()
    max_output_tokens: int = 16_000


class ModelInfo(BaseModel):
    """Public listing entry for a model."""

    id: str
    label: str


class ModelTuning(BaseModel):
    """Caller-supplied tuning options for one resolution."""

    reasoning_effort: ReasoningEffort | None = None


@dataclass
class ModelOptions:
    """Concrete backend invocation descriptor."""

    spec: ModelSpec
    handle: Any
    headers: dict[str, str] = field(default_factory=dict)
    provider_options: dict[str, Any] = field(default_factory=dict)

    @property
    def model_id(self) -> str:
        return self.spec.id

    @property
    def label(self) -> str:
        return self.spec.label


@dataclass
class TokenUsage:
    """Token usage accumulated across the model calls of a turn."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, usage: dict[str, Any] | None) -> None:
        """Add a langchain ``usage_metadata`` mapping."""
        if not usage:
            return
        self.input_tokens += usage.get("input_tokens", 0) or 0
        self.output_tokens += usage.get("output_tokens", 0) or 0
