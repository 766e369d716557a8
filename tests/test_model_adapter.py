"""Tests for model resolution."""

import pytest
from langchain_anthropic import ChatAnthropic

from clark.models.llm import ModelSpec, ModelTuning, ReasoningEffort
from clark.services.model_adapter import (
    DEFAULT_MODEL_ID,
    FINE_GRAINED_TOOL_STREAMING,
    ModelAdapter,
    ModelRegistry,
    UnsupportedModelError,
)


class RecordingFactory:
    """Handle factory that records its arguments instead of building a client."""

    def __init__(self):
        self.calls = []

    def __call__(self, spec, headers, provider_options, max_tokens):
        self.calls.append((spec, headers, provider_options, max_tokens))
        return object()


@pytest.fixture
def factory():
    return RecordingFactory()


@pytest.fixture
def adapter(factory):
    return ModelAdapter(handle_factory=factory)


class TestModelResolution:
    """Tests for ModelAdapter.resolve."""

    def test_default_model(self, adapter):
        """Test a missing id resolves to the default model."""
        options = adapter.resolve()
        assert options.model_id == DEFAULT_MODEL_ID
        assert options.label == "Claude Opus 4.5"

    def test_tool_streaming_header(self, adapter):
        """Test every resolution enables fine-grained tool streaming."""
        options = adapter.resolve("claude-3-5-haiku-20241022")
        assert options.headers == {"anthropic-beta": FINE_GRAINED_TOOL_STREAMING}

    def test_legacy_id_normalized(self, adapter):
        """Test gateway-style ids map to supported models."""
        options = adapter.resolve("anthropic/claude-sonnet-4.5")
        assert options.model_id == "claude-sonnet-4-5-20250929"

    def test_unsupported_model_rejected(self, adapter, factory):
        """Test unknown ids raise before any handle is built."""
        with pytest.raises(UnsupportedModelError) as exc_info:
            adapter.resolve("nonexistent-model")

        assert exc_info.value.model_id == "nonexistent-model"
        assert factory.calls == []

    def test_reasoning_effort_enables_thinking(self, adapter, factory):
        """Test supported efforts map to a thinking budget."""
        options = adapter.resolve(DEFAULT_MODEL_ID, ModelTuning(reasoning_effort=ReasoningEffort.MEDIUM))

        assert options.provider_options == {"thinking": {"type": "enabled", "budget_tokens": 8_192}}
        _, _, _, max_tokens = factory.calls[-1]
        assert max_tokens >= 8_192 + 4_096

    def test_reasoning_effort_ignored_for_non_reasoning_model(self, adapter):
        """Test efforts are dropped for models without reasoning."""
        options = adapter.resolve("claude-3-5-haiku-20241022", ModelTuning(reasoning_effort=ReasoningEffort.HIGH))
        assert options.provider_options == {}

    def test_unsupported_effort_level_ignored(self, adapter):
        """Test effort levels a model does not offer are ignored rather than rejected."""
        options = adapter.resolve(DEFAULT_MODEL_ID, ModelTuning(reasoning_effort=ReasoningEffort.XHIGH))
        assert options.provider_options == {}

    def test_none_effort(self, adapter):
        """Test the none effort disables reasoning."""
        options = adapter.resolve(DEFAULT_MODEL_ID, ModelTuning(reasoning_effort=ReasoningEffort.NONE))
        assert options.provider_options == {}

    def test_default_handle_is_chat_anthropic(self):
        """Test the default factory builds a ChatAnthropic handle without network access."""
        options = ModelAdapter(api_key="test-key").resolve("claude-3-5-haiku-20241022")

        assert isinstance(options.handle, ChatAnthropic)
        assert options.handle.model == "claude-3-5-haiku-20241022"


class TestModelRegistry:
    """Tests for the static model registry."""

    def test_list_available_models(self, adapter):
        """Test listing returns ids and labels."""
        models = adapter.list_available_models()
        ids = [model.id for model in models]

        assert DEFAULT_MODEL_ID in ids
        assert all(model.label for model in models)

    def test_custom_registry(self):
        """Test a registry built from custom specs."""
        registry = ModelRegistry(models=[ModelSpec(id="small", label="Small")], default_model_id="small", aliases={})
        assert registry.get("small").label == "Small"
        assert registry.get("anthropic/claude-opus-4.5") is None

    def test_default_must_be_registered(self):
        """Test an unknown default model is a configuration error."""
        with pytest.raises(ValueError):
            ModelRegistry(models=[ModelSpec(id="small", label="Small")], default_model_id="large")
