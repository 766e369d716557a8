"""Conversion of UI messages into model messages."""

import json
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from pydantic import ValidationError

from clark.models.data_parts import ReportErrorsData
from clark.models.messages import (
    TERMINAL_TOOL_CALL_STATES,
    DataPart,
    TextPart,
    ToolCallPart,
    UIMessage,
)

REPORT_ERRORS_TYPE = "data-report-errors"


class InvalidMessageError(ValueError):
    """A message part the turn cannot be built from."""

    def __init__(self, message_id: str, detail: str):
        super().__init__(f"Invalid message {message_id}: {detail}")
        self.message_id = message_id


def report_errors_text(report: ReportErrorsData) -> str:
    text = f"There are errors in the generated code. This is the summary of the errors we have:\n```{report.summary}```\n"
    if report.paths:
        joined = "\n".join(report.paths)
        text += f"The following files may contain errors:\n```{joined}```\n"
    return text + "Fix the errors reported."


def rewrite_report_errors(messages: list[UIMessage]) -> list[UIMessage]:
    """Replace each error report part with a plain text instruction.

    Returns new messages; the input is not modified.

    Raises:
        InvalidMessageError: If an error report is missing its summary or has a malformed path list
    """
    rewritten = []
    for message in messages:
        parts = []
        for part in message.parts:
            if isinstance(part, DataPart) and part.type == REPORT_ERRORS_TYPE:
                try:
                    report = ReportErrorsData.model_validate(part.data)
                except ValidationError as e:
                    fields = ", ".join(".".join(str(loc) for loc in error["loc"]) for error in e.errors())
                    raise InvalidMessageError(message.id, f"malformed {REPORT_ERRORS_TYPE} part ({fields})") from e
                parts.append(TextPart(id=part.id, text=report_errors_text(report)))
            else:
                parts.append(part)
        rewritten.append(message.model_copy(update={"parts": parts}))
    return rewritten


def collect_instructions(messages: list[UIMessage]) -> str:
    """Text of system and developer messages, appended to the system prompt."""
    return "\n\n".join(m.text() for m in messages if m.role in ("system", "developer") and m.text())


def _tool_output_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, default=str)


def _assistant_messages(message: UIMessage) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    text: list[str] = []
    calls: list[ToolCallPart] = []

    def flush() -> None:
        if not text and not calls:
            return
        converted.append(
            AIMessage(
                content="".join(text),
                tool_calls=[
                    {"id": call.tool_call_id, "name": call.tool_name, "args": call.input or {}} for call in calls
                ],
            )
        )
        for call in calls:
            failed = call.state == "output-error"
            converted.append(
                ToolMessage(
                    content=(call.error_text or "Tool failed") if failed else _tool_output_text(call.output),
                    tool_call_id=call.tool_call_id,
                    name=call.tool_name,
                    status="error" if failed else "success",
                )
            )
        text.clear()
        calls.clear()

    for part in message.parts:
        if isinstance(part, TextPart) and part.text:
            # Text after tool results starts the next step
            if calls:
                flush()
            text.append(part.text)
        elif isinstance(part, ToolCallPart) and part.state in TERMINAL_TOOL_CALL_STATES:
            calls.append(part)

    flush()
    return converted


def convert_to_model_messages(messages: list[UIMessage]) -> list[BaseMessage]:
    """Convert UI messages to model messages.

    Reasoning and progress parts are not sent back to the model. Tool calls
    that never reached a terminal state are dropped.
    """
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            text = message.text()
            if text:
                converted.append(HumanMessage(content=text, id=message.id))
        elif message.role == "assistant":
            converted.extend(_assistant_messages(message))
    return converted
