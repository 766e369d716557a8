"""Test doubles for the chat model and helpers over emitted events."""

import json
from typing import Any

from langchain_core.messages import AIMessageChunk

from clark.services.event_writer import EventWriter


def text_chunks(*pieces: str) -> list[AIMessageChunk]:
    """Streamed text response, one chunk per piece."""
    return [AIMessageChunk(content=piece) for piece in pieces]


def tool_call_chunks(calls: list[tuple[str, str, dict[str, Any]]]) -> list[AIMessageChunk]:
    """Streamed tool calls as (id, name, args); arguments arrive in a second chunk per call."""
    chunks = []
    for index, (call_id, name, args) in enumerate(calls):
        chunks.append(
            AIMessageChunk(content="", tool_call_chunks=[{"name": name, "args": "", "id": call_id, "index": index}])
        )
        chunks.append(
            AIMessageChunk(
                content="", tool_call_chunks=[{"name": None, "args": json.dumps(args), "id": None, "index": index}]
            )
        )
    return chunks


def usage_chunk(input_tokens: int, output_tokens: int) -> AIMessageChunk:
    return AIMessageChunk(
        content="",
        usage_metadata={
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        },
    )


class ScriptedChatModel:
    """Chat model double that streams a scripted response per call.

    A scripted response is a list of chunks or an exception raised when the
    stream starts. An exception inside the list is raised mid-stream.
    """

    def __init__(
        self,
        responses: list[list[AIMessageChunk | Exception] | Exception],
        structured: list[dict[str, Any] | Exception] | None = None,
    ):
        self.responses = responses
        self.structured = list(structured or [])
        self.calls: list[list[Any]] = []
        self.structured_calls: list[list[Any]] = []
        self.bound_tools: list[dict[str, Any]] | None = None

    def bind_tools(self, tools: list[dict[str, Any]]) -> "ScriptedChatModel":
        self.bound_tools = tools
        return self

    def with_structured_output(self, schema):
        model = self

        class StructuredOutput:
            async def ainvoke(self, messages):
                model.structured_calls.append(list(messages))
                response = model.structured[len(model.structured_calls) - 1]
                if isinstance(response, Exception):
                    raise response
                return schema.model_validate(response)

        return StructuredOutput()

    async def astream(self, messages: list[Any]):
        self.calls.append(list(messages))
        response = self.responses[len(self.calls) - 1]

        if isinstance(response, Exception):
            raise response
        for chunk in response:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def scripted_factory(model: ScriptedChatModel):
    """Handle factory that resolves every model id to the same scripted model."""
    return lambda spec, headers, options, max_tokens: model


async def collect(writer: EventWriter) -> list[Any]:
    """Close the writer once merged streams finish and return everything it emitted."""
    await writer.drain()
    writer.close()
    return [event async for event in writer.events()]


def data_events(events: list[Any], kind: str) -> list[dict[str, Any]]:
    return [event.data for event in events if event.type == f"data-{kind}"]


def types_of(events: list[Any]) -> list[str]:
    return [event.type for event in events]
