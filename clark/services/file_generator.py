"""Streams multi-file model completions as batches of settled files."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, Field

from clark.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a file content generator. You must generate files based on the conversation history "
    "and the provided paths. NEVER generate lock files (pnpm-lock.yaml, package-lock.json, yarn.lock) "
    "- these are automatically created by package managers."
)

# Trailing array entries presumed still in flight. A model may stream object
# fields out of order, so the entry before the last is not trusted either.
DEFAULT_TAIL_GUARD = 2

_DONE = object()


class GeneratedFile(BaseModel):
    """One generated file."""

    path: str = Field(
        min_length=1,
        description=(
            "Path to the file in the sandbox, relative to the sandbox root "
            "(e.g., 'src/main.js', 'package.json', 'components/Button.tsx')"
        ),
    )
    content: str = Field(
        description="Complete UTF-8 file contents that replace any existing file at this path",
    )


class GeneratedFiles(BaseModel):
    files: list[GeneratedFile]


@dataclass
class FileContentChunk:
    """Newly settled files plus the path bookkeeping for progress display."""

    files: list[GeneratedFile]
    paths: list[str] = field(default_factory=list)
    written: list[str] = field(default_factory=list)


class FileContentGenerator:
    """Asks the model for ``{files: [{path, content}]}`` and yields settled files early.

    ``stream`` is a lazy, finite, non-restartable async generator. Each chunk
    carries only files not yielded before. Entries within ``tail_guard``
    positions of the end of the streamed array are held back until the
    completion finishes, then flushed in one last chunk.
    """

    def __init__(self, model: BaseChatModel, tail_guard: int = DEFAULT_TAIL_GUARD):
        if tail_guard < 1:
            raise ValueError("tail_guard must be at least 1")
        self.model = model
        self.tail_guard = tail_guard
        self.parser = JsonOutputParser(pydantic_object=GeneratedFiles)

    def build_prompt(self, messages: list[BaseMessage], paths: list[str]) -> list[BaseMessage]:
        listing = "".join(f"\n - {path}" for path in paths)
        return [
            SystemMessage(content=f"{SYSTEM_PROMPT}\n\n{self.parser.get_format_instructions()}"),
            *[m for m in messages if m.type != "system"],
            HumanMessage(content=f"Generate the content of the following files according to the conversation: {listing}"),
        ]

    async def stream(self, messages: list[BaseMessage], paths: list[str]) -> AsyncIterator[FileContentChunk]:
        prompt = self.build_prompt(messages, paths)
        generated: list[GeneratedFile] = []

        loop = asyncio.get_running_loop()
        result: asyncio.Future[Any] = loop.create_future()
        failure: asyncio.Future[None] = loop.create_future()
        partials: asyncio.Queue[Any] = asyncio.Queue()
        producer = asyncio.create_task(self._produce(prompt, partials, result, failure))

        try:
            while (partial := await partials.get()) is not _DONE:
                chunk = self._settle(partial, generated)
                if chunk is not None:
                    yield chunk

            # Whichever settles first decides between the final flush and an error
            done, _ = await asyncio.wait({result, failure}, return_when=asyncio.FIRST_COMPLETED)
            if failure in done:
                raise failure.exception()

            final = GeneratedFiles.model_validate(result.result())
            written = [file.path for file in generated]
            remaining = final.files[len(generated) :]
            if remaining:
                generated.extend(remaining)
                yield FileContentChunk(
                    files=remaining,
                    paths=written + [file.path for file in remaining],
                    written=written,
                )
        finally:
            if not producer.done():
                producer.cancel()
            for future in (result, failure):
                if not future.done():
                    future.cancel()

    async def _produce(
        self,
        prompt: list[BaseMessage],
        partials: asyncio.Queue[Any],
        result: asyncio.Future[Any],
        failure: asyncio.Future[None],
    ) -> None:
        last: Any = None
        try:
            async for partial in self._partial_outputs(prompt):
                last = partial
                partials.put_nowait(partial)
            if not result.done():
                result.set_result(last)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error communicating with AI during file generation: {e}", exc_info=True)
            if not failure.done():
                failure.set_exception(e)
        finally:
            partials.put_nowait(_DONE)

    async def _partial_outputs(self, prompt: list[BaseMessage]) -> AsyncIterator[Any]:
        """Accumulated partial JSON objects, one per streamed model chunk."""
        chain = self.model | self.parser
        async for partial in chain.astream(prompt):
            yield partial

    def _settle(self, partial: Any, generated: list[GeneratedFile]) -> FileContentChunk | None:
        if not isinstance(partial, dict) or not isinstance(partial.get("files"), list):
            return None

        items = partial["files"]
        start = len(generated)
        written = [file.path for file in generated]

        # The final entry's path may itself still be streaming
        paths = written + [
            item["path"] for item in items[start : len(items) - 1] if isinstance(item, dict) and item.get("path")
        ]

        files = [GeneratedFile.model_validate(item) for item in items[start : len(items) - self.tail_guard]]
        generated.extend(files)
        return FileContentChunk(files=files, paths=paths, written=written)
