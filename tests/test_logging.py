"""Tests for turn-tagged logging."""

import logging

import pytest
from fakes import ScriptedChatModel, scripted_factory

from clark.models.conversation import ChatRequest
from clark.models.messages import TextPart, UIMessage
from clark.services.container import build_services
from clark.utils.logging import LogConfig, TurnFilter, current_turn, setup_logging, turn_logging


def make_record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("clark.test", logging.INFO, __file__, 1, message, None, None)


class TestTurnFilter:
    """Tests for TurnFilter and turn_logging."""

    def test_outside_turn(self):
        """Test records written outside a turn are tagged with a dash."""
        record = make_record()

        assert TurnFilter().filter(record) is True
        assert record.turn == "-"

    def test_inside_turn(self):
        """Test records written inside a turn carry its message id."""
        record = make_record()

        with turn_logging("msg_1"):
            TurnFilter().filter(record)

        assert record.turn == "msg_1"
        assert current_turn.get() is None

    def test_nested_turns_restore(self):
        """Test leaving a nested block restores the outer turn."""
        with turn_logging("msg_outer"):
            with turn_logging("msg_inner"):
                assert current_turn.get() == "msg_inner"
            assert current_turn.get() == "msg_outer"


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_handler_formats_turn(self):
        """Test the installed handler tags and formats records with the turn."""
        setup_logging(LogConfig(level="debug"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        (handler,) = root.handlers

        record = make_record("tool call started")
        with turn_logging("msg_42"):
            handler.filter(record)
        assert "[msg_42] tool call started" in handler.format(record)

    def test_quiets_noisy_loggers(self):
        """Test client library loggers are raised to WARNING."""
        setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING


class TestChatTurnLogging:
    """Tests that turn logs carry the turn's message id."""

    @pytest.mark.asyncio
    async def test_turn_records_tagged(self, settings, caplog):
        """Test records written while a turn runs are tagged; the caller's are not."""
        caplog.handler.addFilter(TurnFilter())
        model = ScriptedChatModel([RuntimeError("overloaded")])
        services = build_services(settings=settings, handle_factory=scripted_factory(model))

        turn = await services.chat.start_turn(
            ChatRequest(
                conversation_id="conv_1",
                messages=[UIMessage(id="user-1", role="user", parts=[TextPart(text="hi")])],
            )
        )
        await turn.wait()

        def turn_of(prefix: str) -> str:
            return next(record.turn for record in caplog.records if record.getMessage().startswith(prefix))

        assert turn_of(f"Started turn {turn.message_id}") == "-"
        assert turn_of("Model stream error at step 1") == turn.message_id
