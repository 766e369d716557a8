#!/usr/bin/env python3
"""Interactive chat CLI for the agent service."""

import json
import sys
from typing import Any

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from clark.models.events import (
    DataEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolInputAvailableEvent,
    ToolOutputErrorEvent,
    parse_event,
)
from clark.services.event_writer import MessageBuilder
from clark.utils import identifiers

DONE = object()


def parse_sse_line(line: str) -> Any:
    """Parse one server-sent event line.

    Returns:
        The decoded JSON payload, DONE for the terminator, or None for
        anything that is not a data line
    """
    if not line.startswith("data:"):
        return None
    payload = line[len("data:") :].strip()
    if payload == "[DONE]":
        return DONE
    return json.loads(payload)


class ChatCLI:
    """Interactive chat interface for the agent service."""

    def __init__(self, base_url: str = "http://localhost:8000", model_id: str | None = None):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.model_id = model_id
        self.conversation_id = identifiers.conversation_id()
        self.history: list[dict[str, Any]] = []
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(30.0, read=None))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Clark - Interactive Chat[/bold blue]\n"
                "Describe the app you want to build.\n"
                "Commands: /help, /models, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print(f"[green]✅ Connected[/green] [dim](conversation {self.conversation_id})[/dim]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/models":
                    self._show_models()
                    continue
                elif user_input.lower() == "/clear":
                    self.conversation_id = identifiers.conversation_id()
                    self.history = []
                    self.console.print("[yellow]🔄 Started a new conversation[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def build_payload(self, message: str) -> dict[str, Any]:
        user_message = {
            "id": identifiers.message_id(),
            "role": "user",
            "parts": [{"type": "text", "text": message}],
        }
        self.history.append(user_message)

        payload: dict[str, Any] = {"conversationId": self.conversation_id, "messages": self.history}
        if self.model_id:
            payload["modelId"] = self.model_id
        return payload

    def _send_message(self, message: str) -> None:
        """Send a turn and render its event stream."""
        payload = self.build_payload(message)
        builder: MessageBuilder | None = None

        try:
            with self.client.stream("POST", f"{self.base_url}/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    self.history.pop()
                    return

                for line in response.iter_lines():
                    data = parse_sse_line(line)
                    if data is None:
                        continue
                    if data is DONE:
                        break

                    if data.get("type") == "start":
                        builder = MessageBuilder(data["messageId"])
                        self.console.print("\n[bold green]Clark[/bold green]")
                        continue

                    event = parse_event(data)
                    if builder is not None:
                        builder.apply(event)
                    self.render_event(event)

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if builder is not None:
            self.history.append(builder.snapshot().model_dump(mode="json", by_alias=True, exclude_none=True))

    def render_event(self, event: StreamEvent) -> None:
        """Print one event as it arrives."""
        match event:
            case TextDeltaEvent():
                self.console.print(event.delta, end="", markup=False, highlight=False)
            case ReasoningDeltaEvent():
                self.console.print(f"[dim italic]{event.delta}[/dim italic]", end="")
            case ToolInputAvailableEvent():
                self.console.print(f"\n[cyan]🔧 {event.tool_name}[/cyan] [dim]{json.dumps(event.input)}[/dim]")
            case ToolOutputErrorEvent():
                self.console.print(f"[red]   ✗ {event.error_text}[/red]")
            case DataEvent():
                self._render_progress(event)
            case ErrorEvent():
                self.console.print(f"\n[red]❌ {event.error_text}[/red]")
            case FinishEvent():
                metadata = event.message_metadata
                self.console.print(
                    f"\n[dim]({metadata.model}, {metadata.total_tokens} tokens, {event.finish_reason})[/dim]"
                )

    def _render_progress(self, event: DataEvent) -> None:
        data = event.data
        kind = event.type.removeprefix("data-")

        if kind == "command-log":
            self.console.print(f"[dim]   │ {data.get('data', '').rstrip()}[/dim]", markup=True, highlight=False)
            return
        if kind == "report-errors":
            self.console.print(Panel(Markdown(data.get("summary", "")), title="Errors", border_style="red"))
            return

        status = data.get("status", "")
        detail = data.get("url") or data.get("sandboxId") or ", ".join(data.get("paths", []))
        if data.get("error"):
            self.console.print(f"[red]   {kind}: {status} - {data['error'].get('message')}[/red]")
        else:
            self.console.print(f"[dim]   {kind}: {status}[/dim] {detail}")

    def _show_models(self) -> None:
        try:
            response = self.client.get(f"{self.base_url}/models")
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Could not list models: {e}[/red]")
            return

        models = "\n".join(f"• {model['id']} ({model['label']})" for model in response.json())
        self.console.print(Panel(models, title="[cyan]Models[/cyan]", border_style="cyan"))

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /models - List supported models
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "Build a Next.js todo app with sign-in"
2. "Add a dark mode toggle"
3. "The page shows a hydration error, please fix it"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    model_id = sys.argv[2] if len(sys.argv) > 2 else None

    chat = ChatCLI(base_url, model_id)
    chat.start()


if __name__ == "__main__":
    main()
