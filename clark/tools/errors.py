"""Uniform error envelope for tool failures."""

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from clark.models.data_parts import ErrorInfo
from clark.services.sandbox import SandboxAPIError


class RichError(BaseModel):
    """Normalized ``{message, action, args}`` error, safe to show the model and the client."""

    message: str
    action: str
    args: dict[str, Any] | None = None
    error: ErrorInfo


class ToolExecutionError(Exception):
    """A tool failed. The agent loop turns this into a tool result the model can read."""

    def __init__(self, rich: RichError):
        super().__init__(rich.message)
        self.rich = rich


class ConfigurationError(ToolExecutionError):
    """A credential or setting the tool needs is missing."""


def get_rich_error(action: str, error: BaseException, args: dict[str, Any] | None = None) -> RichError:
    """Wrap any failure into a RichError without leaking provider exception shapes."""
    if isinstance(error, ToolExecutionError):
        return error.rich

    if isinstance(error, SandboxAPIError):
        info = ErrorInfo(message=error.message, code=error.code)
    elif isinstance(error, httpx.HTTPStatusError):
        info = ErrorInfo(message=f"HTTP {error.response.status_code} from {error.request.url.host}")
    elif isinstance(error, httpx.HTTPError):
        info = ErrorInfo(message=f"Network error: {type(error).__name__}")
    elif isinstance(error, ValidationError):
        info = ErrorInfo(message=f"Unexpected response shape: {error.error_count()} validation errors")
    else:
        info = ErrorInfo(message=str(error) or type(error).__name__)

    details = f"{info.message} ({info.code})" if info.code else info.message
    return RichError(message=f"Error {action.lower()}: {details}", action=action, args=args, error=info)
