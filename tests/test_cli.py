"""Tests for the chat CLI helpers."""

from clark.cli import DONE, ChatCLI, parse_sse_line


class TestParseSSELine:
    """Tests for parse_sse_line."""

    def test_data_line(self):
        """Test JSON payloads are decoded."""
        assert parse_sse_line('data: {"type": "text-delta", "id": "t", "delta": "Hi"}') == {
            "type": "text-delta",
            "id": "t",
            "delta": "Hi",
        }

    def test_done(self):
        """Test the stream terminator."""
        assert parse_sse_line("data: [DONE]") is DONE

    def test_other_lines_ignored(self):
        """Test blank and comment lines are skipped."""
        assert parse_sse_line("") is None
        assert parse_sse_line(": keep-alive") is None


class TestBuildPayload:
    """Tests for ChatCLI.build_payload."""

    def test_payload_carries_history(self):
        """Test each message is appended to the conversation history."""
        cli = ChatCLI(model_id="claude-sonnet-4-5-20250929")
        try:
            cli.build_payload("first")
            payload = cli.build_payload("second")
        finally:
            cli.client.close()

        assert payload["conversationId"] == cli.conversation_id
        assert payload["modelId"] == "claude-sonnet-4-5-20250929"
        assert [m["parts"][0]["text"] for m in payload["messages"]] == ["first", "second"]
        assert all(m["role"] == "user" for m in payload["messages"])

    def test_default_model_omitted(self):
        """Test no model id is sent unless one was chosen."""
        cli = ChatCLI()
        try:
            payload = cli.build_payload("hello")
        finally:
            cli.client.close()

        assert "modelId" not in payload
