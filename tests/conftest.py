"""Shared fixtures."""

import pytest

from clark.config import Settings
from clark.models.llm import ModelOptions
from clark.services.event_writer import EventWriter
from clark.services.model_adapter import SUPPORTED_MODELS
from clark.services.repositories import (
    InMemoryConversationRepository,
    InMemoryMCPConnectionRepository,
    InMemoryMessageRepository,
    InMemoryResourceRepository,
    InMemoryStore,
)
from clark.services.sandbox import LocalSandboxProvider
from clark.tools.base import ToolContext


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def conversations(store):
    return InMemoryConversationRepository(store)


@pytest.fixture
def messages_repo(store, conversations):
    return InMemoryMessageRepository(store, conversations)


@pytest.fixture
def resources(store):
    return InMemoryResourceRepository(store)


@pytest.fixture
def connections(store):
    return InMemoryMCPConnectionRepository(store)


@pytest.fixture
def sandboxes(tmp_path):
    return LocalSandboxProvider(tmp_path / "sandboxes")


@pytest.fixture
def settings(tmp_path):
    return Settings(sandbox_root=str(tmp_path / "sandboxes"))


@pytest.fixture
def writer():
    return EventWriter("msg_test")


@pytest.fixture
def tool_context(writer, sandboxes, resources, settings):
    return ToolContext(
        writer=writer,
        model=ModelOptions(spec=SUPPORTED_MODELS[0], handle=None),
        sandboxes=sandboxes,
        resources=resources,
        conversation_id="conv_test",
        settings=settings,
    )
