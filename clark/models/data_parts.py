"""Progress payloads carried by ``data-<kind>`` events, one model per tool kind."""

from typing import Literal

from pydantic import Field

from clark.models.messages import CamelModel


class ErrorInfo(CamelModel):
    """Client-safe error description."""

    message: str
    code: str | None = None


class CreateSandboxData(CamelModel):
    status: Literal["loading", "done", "error"]
    sandbox_id: str | None = None
    error: ErrorInfo | None = None


class GenerateFilesData(CamelModel):
    status: Literal["generating", "uploading", "uploaded", "done", "error"]
    paths: list[str] = Field(default_factory=list)
    error: ErrorInfo | None = None


class RunCommandData(CamelModel):
    status: Literal["executing", "running", "waiting", "done", "error"]
    sandbox_id: str
    command: str
    args: list[str] = Field(default_factory=list)
    command_id: str | None = None
    exit_code: int | None = None
    error: ErrorInfo | None = None


class CommandLogData(CamelModel):
    """One line of command output. Carries no status."""

    sandbox_id: str
    command_id: str
    stream: Literal["stdout", "stderr"]
    data: str


class GetSandboxUrlData(CamelModel):
    status: Literal["loading", "done"]
    url: str | None = None


class ReportErrorsData(CamelModel):
    """Synthesized error report. Terminal by construction, so there is no status."""

    summary: str
    paths: list[str] | None = None


class WaitData(CamelModel):
    status: Literal["waiting", "completed"]
    time_ms: int | None = Field(default=None, alias="time_ms")


class CreateClerkAppData(CamelModel):
    status: Literal["loading", "done", "error"]
    name: str | None = None
    application_id: str | None = None
    publishable_key: str | None = None
    secret_key: str | None = None
    error: ErrorInfo | None = None


class CreatePscaleDbData(CamelModel):
    status: Literal["loading", "done", "error"]
    name: str | None = None
    database_id: str | None = None
    url: str | None = None
    error: ErrorInfo | None = None


# Statuses after which a data part is never updated again
TERMINAL_STATUSES = frozenset({"done", "error", "completed"})
