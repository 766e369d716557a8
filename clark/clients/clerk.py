"""Typed client for the Clerk Platform API."""

from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from clark.utils.logging import get_logger

logger = get_logger(__name__)


class ClerkInstance(BaseModel):
    instance_id: str | None = None
    environment_type: str
    publishable_key: str | None = None
    secret_key: str | None = None

    class Config:
        extra = "ignore"


class ClerkApplication(BaseModel):
    application_id: str
    name: str | None = None
    instances: list[ClerkInstance] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    def instance(self, environment_type: str) -> ClerkInstance | None:
        return next((i for i in self.instances if i.environment_type == environment_type), None)


class ClerkErrorDetail(BaseModel):
    message: str
    code: str | None = None

    class Config:
        extra = "ignore"


class ClerkErrorBody(BaseModel):
    errors: list[ClerkErrorDetail] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class ClerkResponse(BaseModel):
    """Either ``data`` or ``error`` is set."""

    data: ClerkApplication | None = None
    error: ClerkErrorBody | None = None
    status_code: int

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        if self.error.errors:
            return self.error.errors[0].message
        return None


class ClerkPlatformClient:
    """Bearer-authenticated client for application provisioning."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.clerk.com/v1",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "ClerkPlatformClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_application(
        self,
        name: str,
        template: Literal["b2b-saas", "waitlist"] | None = None,
        environment_types: list[str] | None = None,
    ) -> ClerkResponse:
        """Create an application. Non-2xx responses come back as ``error``, not as exceptions."""
        body: dict[str, Any] = {"name": name, "environment_types": environment_types or ["development"]}
        if template:
            body["template"] = template

        logger.info(f"Creating Clerk application {name}")
        response = await self._client.post("/platform/applications", json=body)

        if response.is_success:
            return ClerkResponse(data=ClerkApplication.model_validate(response.json()), status_code=response.status_code)

        logger.warning(f"Clerk API returned {response.status_code} for application {name}")
        try:
            error = ClerkErrorBody.model_validate(response.json())
        except ValueError:
            error = ClerkErrorBody(errors=[ClerkErrorDetail(message=f"HTTP {response.status_code}")])
        return ClerkResponse(error=error, status_code=response.status_code)
