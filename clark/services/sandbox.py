"""Execution sandbox interface and a local, directory-backed provider."""

import asyncio
import os
import shutil
import signal
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Literal, Protocol

from clark.utils.identifiers import new_id
from clark.utils.logging import get_logger

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024
# Longer runs without a newline are split into several lines
MAX_LINE_BYTES = 1024 * 1024
MAX_BUFFERED_LINES = 5_000


class SandboxAPIError(Exception):
    """Sandbox provider failure with a machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


@dataclass
class SandboxFile:
    path: str
    content: str


@dataclass
class LogLine:
    stream: Literal["stdout", "stderr"]
    data: str


@dataclass
class CommandResult:
    cmd_id: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Command(Protocol):
    """A command started inside a sandbox."""

    cmd_id: str

    def logs(self) -> AsyncIterator[LogLine]:
        """Output lines from the start of the command until it exits."""
        ...

    async def wait(self) -> CommandResult:
        """Wait for the command to exit."""
        ...


class Sandbox(Protocol):
    """An isolated execution environment."""

    sandbox_id: str

    async def run_command(
        self, cmd: str, args: list[str], sudo: bool = False, env: dict[str, str] | None = None
    ) -> Command: ...

    def get_command(self, cmd_id: str) -> Command: ...

    async def write_files(self, files: list[SandboxFile]) -> None: ...

    async def read_file(self, path: str) -> str | None: ...

    def domain(self, port: int) -> str: ...


class SandboxProvider(Protocol):
    """Creates and looks up sandboxes."""

    async def create(
        self, timeout_ms: int, ports: list[int] | None = None, env: dict[str, str] | None = None
    ) -> Sandbox: ...

    async def get(self, sandbox_id: str) -> Sandbox: ...


class LocalCommand:
    """A subprocess whose most recent output lines are buffered for replay."""

    def __init__(
        self, cmd_id: str, process: asyncio.subprocess.Process, max_buffered_lines: int = MAX_BUFFERED_LINES
    ):
        self.cmd_id = cmd_id
        self.process = process
        self._lines: deque[LogLine] = deque(maxlen=max_buffered_lines)
        # Lines evicted from the front of the buffer
        self._dropped = 0
        self._eof = False
        self._cond = asyncio.Condition()
        self._reader = asyncio.create_task(self._read_all())

    async def _publish(self, name: Literal["stdout", "stderr"], chunks: list[bytes]) -> None:
        if not chunks:
            return
        async with self._cond:
            for chunk in chunks:
                if len(self._lines) == self._lines.maxlen:
                    self._dropped += 1
                self._lines.append(LogLine(stream=name, data=chunk.decode(errors="replace")))
            self._cond.notify_all()

    async def _pump(self, stream: asyncio.StreamReader | None, name: Literal["stdout", "stderr"]) -> None:
        if stream is None:
            return
        pending = b""
        while chunk := await stream.read(READ_CHUNK_SIZE):
            *complete, pending = (pending + chunk).split(b"\n")
            lines = [line + b"\n" for line in complete]
            while len(pending) >= MAX_LINE_BYTES:
                lines.append(pending[:MAX_LINE_BYTES])
                pending = pending[MAX_LINE_BYTES:]
            await self._publish(name, lines)
        if pending:
            await self._publish(name, [pending])

    async def _read_all(self) -> None:
        try:
            results = await asyncio.gather(
                self._pump(self.process.stdout, "stdout"),
                self._pump(self.process.stderr, "stderr"),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"Lost output of command {self.cmd_id}: {result}")
        finally:
            try:
                await self.process.wait()
            finally:
                async with self._cond:
                    self._eof = True
                    self._cond.notify_all()

    async def logs(self) -> AsyncIterator[LogLine]:
        index = 0
        while True:
            async with self._cond:
                await self._cond.wait_for(lambda: index < self._dropped + len(self._lines) or self._eof)
                batch = list(self._lines)[max(index - self._dropped, 0) :]
                index = self._dropped + len(self._lines)
                eof = self._eof
            for line in batch:
                yield line
            if eof:
                return

    async def wait(self) -> CommandResult:
        await self._reader
        return CommandResult(
            cmd_id=self.cmd_id,
            exit_code=self.process.returncode if self.process.returncode is not None else -1,
            stdout="".join(line.data for line in self._lines if line.stream == "stdout"),
            stderr="".join(line.data for line in self._lines if line.stream == "stderr"),
        )

    def kill(self) -> None:
        """Kill the command and every process it started."""
        if self.process.returncode is not None:
            return
        try:
            os.killpg(self.process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


@dataclass
class LocalSandbox:
    """Sandbox backed by a working directory on the local machine."""

    sandbox_id: str
    root: Path
    expires_at: datetime
    ports: list[int] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    commands: dict[str, LocalCommand] = field(default_factory=dict)
    max_buffered_lines: int = MAX_BUFFERED_LINES

    @property
    def expired(self) -> bool:
        return datetime.now(UTC) >= self.expires_at

    def stop(self) -> None:
        """Kill every command still running in the sandbox."""
        running = [c for c in self.commands.values() if c.process.returncode is None]
        if running:
            logger.info(f"Stopping {len(running)} commands in sandbox {self.sandbox_id}")
        for command in running:
            command.kill()

    def _check_alive(self) -> None:
        if self.expired:
            self.stop()
            raise SandboxAPIError(f"Sandbox {self.sandbox_id} has expired", code="sandbox_expired", status_code=410)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise SandboxAPIError(f"Path escapes the sandbox: {path}", code="invalid_path")
        return target

    async def run_command(
        self, cmd: str, args: list[str], sudo: bool = False, env: dict[str, str] | None = None
    ) -> LocalCommand:
        self._check_alive()
        if sudo:
            logger.debug(f"Ignoring sudo for local sandbox command: {cmd}")

        try:
            process = await asyncio.create_subprocess_exec(
                cmd,
                *args,
                cwd=self.root,
                env={**os.environ, **self.env, **(env or {})},
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise SandboxAPIError(f"Command not found: {cmd}", code="command_not_found") from e

        command = LocalCommand(new_id("cmd"), process, self.max_buffered_lines)
        self.commands[command.cmd_id] = command
        logger.info(f"Started command {command.cmd_id} in sandbox {self.sandbox_id}: {cmd} {' '.join(args)}")
        return command

    def get_command(self, cmd_id: str) -> LocalCommand:
        command = self.commands.get(cmd_id)
        if command is None:
            raise SandboxAPIError(f"Command not found: {cmd_id}", code="command_not_found", status_code=404)
        return command

    async def write_files(self, files: list[SandboxFile]) -> None:
        self._check_alive()
        targets = [(self._resolve(file.path), file.content) for file in files]

        def write() -> None:
            for target, content in targets:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(write)

    async def read_file(self, path: str) -> str | None:
        self._check_alive()
        target = self._resolve(path)
        if not target.is_file():
            return None
        return await asyncio.to_thread(target.read_text, encoding="utf-8")

    def domain(self, port: int) -> str:
        if port not in self.ports:
            raise SandboxAPIError(f"Port {port} is not exposed by sandbox {self.sandbox_id}", code="port_not_exposed")
        return f"http://localhost:{port}"


class LocalSandboxProvider:
    """Development sandbox provider: one directory per sandbox."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self._sandboxes: dict[str, LocalSandbox] = {}
        self._expiry_timers: dict[str, asyncio.TimerHandle] = {}

    async def create(
        self, timeout_ms: int, ports: list[int] | None = None, env: dict[str, str] | None = None
    ) -> LocalSandbox:
        sandbox_id = new_id("sbx")
        directory = self.root / sandbox_id
        await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)

        sandbox = LocalSandbox(
            sandbox_id=sandbox_id,
            root=directory,
            expires_at=datetime.now(UTC) + timedelta(milliseconds=timeout_ms),
            ports=list(ports or []),
            env=dict(env or {}),
        )
        self._sandboxes[sandbox_id] = sandbox
        self._expiry_timers[sandbox_id] = asyncio.get_running_loop().call_later(timeout_ms / 1000, self._expire, sandbox)
        logger.info(f"Created local sandbox {sandbox_id} at {directory}")
        return sandbox

    async def get(self, sandbox_id: str) -> LocalSandbox:
        sandbox = self._sandboxes.get(sandbox_id)
        if sandbox is None:
            raise SandboxAPIError(f"Sandbox not found: {sandbox_id}", code="sandbox_not_found", status_code=404)
        sandbox._check_alive()
        return sandbox

    def _expire(self, sandbox: LocalSandbox) -> None:
        self._expiry_timers.pop(sandbox.sandbox_id, None)
        logger.info(f"Sandbox {sandbox.sandbox_id} expired")
        sandbox.stop()

    async def destroy(self, sandbox_id: str) -> None:
        timer = self._expiry_timers.pop(sandbox_id, None)
        if timer is not None:
            timer.cancel()
        sandbox = self._sandboxes.pop(sandbox_id, None)
        if sandbox is not None:
            sandbox.stop()
            await asyncio.to_thread(shutil.rmtree, sandbox.root, ignore_errors=True)
