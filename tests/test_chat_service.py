"""Tests for turn orchestration."""

import pytest
from fakes import ScriptedChatModel, scripted_factory, text_chunks, tool_call_chunks, types_of, usage_chunk

from clark.models.conversation import ChatRequest
from clark.models.messages import DataPart, TextPart, UIMessage
from clark.services.chat import COMMUNICATION_ERROR
from clark.services.container import build_services
from clark.services.message_conversion import InvalidMessageError
from clark.services.model_adapter import UnsupportedModelError
from clark.tools.base import ExternalToolDefinition


class FakeConnector:
    """Connector session double recording its lifecycle."""

    instances: list["FakeConnector"] = []

    def __init__(self, name, url, headers):
        self.name = name
        self.url = url
        self.headers = headers
        self.closed = False
        FakeConnector.instances.append(self)

    async def open(self):
        if "broken" in self.url:
            raise ConnectionError("connection refused")

        async def search(arguments):
            return f"results for {arguments.get('q')}"

        return [
            ExternalToolDefinition(name="search", description="Search docs", input_schema={}, call=search, source=self.name),
            ExternalToolDefinition(name="wait", description="Shadowed", input_schema={}, call=search, source=self.name),
        ]

    async def close(self):
        self.closed = True


def user_message(text: str, id: str = "user-1") -> UIMessage:
    return UIMessage(id=id, role="user", parts=[TextPart(text=text)])


def request(*messages: UIMessage, **kwargs) -> ChatRequest:
    return ChatRequest(conversation_id="conv_1", messages=list(messages), **kwargs)


@pytest.fixture
def services_for(settings):
    def build(model: ScriptedChatModel, **kwargs):
        FakeConnector.instances = []
        return build_services(
            settings=settings, handle_factory=scripted_factory(model), connector_factory=FakeConnector, **kwargs
        )

    return build


async def run_turn(services, chat_request: ChatRequest):
    turn = await services.chat.start_turn(chat_request)
    events = [event async for event in turn.events()]
    await turn.wait()
    return turn, events


class TestChatService:
    """Tests for ChatService.start_turn."""

    @pytest.mark.asyncio
    async def test_turn_streams_and_persists(self, services_for):
        """Test a full turn: start first, finish last, both messages stored."""
        model = ScriptedChatModel([text_chunks("Hi ", "there") + [usage_chunk(7, 3)]])
        services = services_for(model)

        turn, events = await run_turn(services, request(user_message("Build a todo app")))

        assert types_of(events) == ["start", "text-delta", "text-delta", "finish"]
        assert events[0].message_id == turn.message_id
        assert events[-1].finish_reason == "stop"
        assert events[-1].message_metadata.model == "Claude Opus 4.5"
        assert events[-1].message_metadata.total_tokens == 10

        conversation = await services.conversations.get_by_id("conv_1")
        assert conversation.title == "Build a todo app"

        stored = await services.messages.list_by_conversation_id("conv_1")
        assert [(m.role, m.external_id) for m in stored] == [("user", "user-1"), ("assistant", turn.message_id)]
        assert stored[1].parts[0].text == "Hi there"
        assert stored[1].metadata["totalTokens"] == 10

    @pytest.mark.asyncio
    async def test_unsupported_model_rejected_up_front(self, services_for):
        """Test an unknown model fails before anything runs or is stored."""
        model = ScriptedChatModel([])
        services = services_for(model)

        with pytest.raises(UnsupportedModelError):
            await services.chat.start_turn(request(user_message("hi"), model_id="nonexistent-model"))

        assert model.calls == []
        assert await services.conversations.get_by_id("conv_1") is None

    @pytest.mark.asyncio
    async def test_model_error_ends_with_error_event(self, services_for):
        """Test a stream failure sends a generic error and keeps the partial answer."""
        model = ScriptedChatModel([[*text_chunks("Partial"), RuntimeError("upstream 529")]])
        services = services_for(model)

        turn, events = await run_turn(services, request(user_message("hi")))

        assert types_of(events) == ["start", "text-delta", "error"]
        assert events[-1].error_text == COMMUNICATION_ERROR
        assert "529" not in events[-1].error_text

        stored = await services.messages.list_by_conversation_id("conv_1")
        assert stored[-1].external_id == turn.message_id
        assert stored[-1].parts[0].text == "Partial"

    @pytest.mark.asyncio
    async def test_retried_turn_does_not_duplicate(self, services_for):
        """Test messages already stored are skipped and new ones are added once."""
        model = ScriptedChatModel([text_chunks("First"), text_chunks("Second")])
        services = services_for(model)

        first, _ = await run_turn(services, request(user_message("one")))
        previous = (await services.messages.list_by_conversation_id("conv_1"))[1].to_ui_message()

        await run_turn(services, request(user_message("one"), previous, user_message("two", id="user-2")))

        stored = await services.messages.list_by_conversation_id("conv_1")
        assert [m.external_id for m in stored][:3] == ["user-1", first.message_id, "user-2"]
        assert len(stored) == 4

    @pytest.mark.asyncio
    async def test_history_sent_to_model(self, services_for):
        """Test previous assistant text and instructions reach the model."""
        model = ScriptedChatModel([text_chunks("ok")])
        services = services_for(model)

        await run_turn(
            services,
            request(
                UIMessage(id="sys", role="system", parts=[TextPart(text="Always use TypeScript.")]),
                user_message("one"),
                UIMessage(id="a1", role="assistant", parts=[TextPart(text="Sure")]),
                user_message("two", id="user-2"),
            ),
        )

        system, *history = model.calls[0]
        assert system.content.endswith("Additional instructions:\nAlways use TypeScript.")
        assert [(m.type, m.content) for m in history] == [("human", "one"), ("ai", "Sure"), ("human", "two")]

    @pytest.mark.asyncio
    async def test_error_report_rewritten(self, services_for):
        """Test a reported error becomes plain text for the model."""
        model = ScriptedChatModel([text_chunks("Fixing")])
        services = services_for(model)
        report = DataPart(
            type="data-report-errors",
            id="report-1",
            data={"summary": "Module not found: ./Button", "paths": ["src/App.tsx"]},
        )

        await run_turn(services, request(UIMessage(id="user-1", role="user", parts=[report])))

        prompt = model.calls[0][-1].content
        assert prompt.startswith("There are errors in the generated code.")
        assert "Module not found: ./Button" in prompt
        assert "src/App.tsx" in prompt
        assert prompt.endswith("Fix the errors reported.")

        # The stored user message keeps the structured report
        stored = await services.messages.list_by_conversation_id("conv_1")
        assert stored[0].parts[0].type == "data-report-errors"

    @pytest.mark.asyncio
    async def test_malformed_error_report_rejected(self, services_for):
        """Test an error report without a summary is rejected before the turn starts."""
        model = ScriptedChatModel([text_chunks("unused")])
        services = services_for(model)
        report = DataPart(type="data-report-errors", id="report-1", data={"paths": ["a.js"]})

        with pytest.raises(InvalidMessageError, match="summary"):
            await services.chat.start_turn(request(UIMessage(id="user-1", role="user", parts=[report])))

        assert model.calls == []
        assert await services.conversations.get_by_id("conv_1") is None

    @pytest.mark.asyncio
    async def test_step_limit_finish_reason(self, services_for, settings):
        """Test reaching the step limit is reported in the finish event."""
        settings.max_steps = 1
        model = ScriptedChatModel([tool_call_chunks([("call_1", "wait", {"time_ms": 0})])])
        services = services_for(model)

        _, events = await run_turn(services, request(user_message("wait")))

        assert events[-1].type == "finish"
        assert events[-1].finish_reason == "step-limit"
        assert "tool-output-available" in types_of(events)

    @pytest.mark.asyncio
    async def test_abort(self, services_for):
        """Test an aborted turn finishes without calling the model."""
        model = ScriptedChatModel([text_chunks("never")])
        services = services_for(model)

        turn = await services.chat.start_turn(request(user_message("hi")))
        turn.cancel()
        events = [event async for event in turn.events()]
        await turn.wait()

        assert types_of(events) == ["start", "finish"]
        assert events[-1].finish_reason == "aborted"
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_connector_tools_merged(self, services_for):
        """Test connector tools join the turn, built-ins win, broken connectors are skipped."""
        model = ScriptedChatModel([text_chunks("ok")])
        services = services_for(model)
        await services.connections.create(name="docs", url="https://docs.example.com/mcp")
        await services.connections.create(name="flaky", url="https://broken.example.com/mcp")
        await services.connections.create(name="off", url="https://off.example.com/mcp", enabled=False)

        _, events = await run_turn(services, request(user_message("hi")))

        names = [tool["name"] for tool in model.bound_tools]
        assert names.count("wait") == 1
        assert "search" in names
        assert events[-1].type == "finish"

        assert [c.name for c in FakeConnector.instances] == ["docs", "flaky"]
        assert FakeConnector.instances[0].closed

    @pytest.mark.asyncio
    async def test_connector_tool_call(self, services_for):
        """Test a connector tool is executed like a built-in one."""
        model = ScriptedChatModel(
            [tool_call_chunks([("call_1", "search", {"q": "clerk"})]), text_chunks("Found it")]
        )
        services = services_for(model)
        await services.connections.create(name="docs", url="https://docs.example.com/mcp")

        _, events = await run_turn(services, request(user_message("search")))

        output = next(e for e in events if e.type == "tool-output-available")
        assert output.output == "results for clerk"
