"""Client for the PlanetScale database API."""

from typing import Any

import httpx
from pydantic import BaseModel

from clark.utils.logging import get_logger

logger = get_logger(__name__)


class PlanetScaleDatabase(BaseModel):
    id: str
    name: str
    url: str | None = None
    state: str | None = None

    class Config:
        extra = "ignore"


class PlanetScaleResponse(BaseModel):
    """Either ``data`` or ``error`` is set."""

    data: PlanetScaleDatabase | None = None
    error: dict[str, Any] | None = None
    status_code: int

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return self.error.get("message") or f"PlanetScale API error: HTTP {self.status_code}"


class PlanetScaleClient:
    """Service-token authenticated client for database provisioning."""

    def __init__(
        self,
        service_token_id: str,
        service_token: str,
        base_url: str = "https://api.planetscale.com/v1",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"{service_token_id}:{service_token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "PlanetScaleClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._client.aclose()

    async def create_database(
        self,
        organization: str,
        name: str,
        cluster_size: str = "PS_10",
        region: str | None = None,
        replicas: int | None = None,
    ) -> PlanetScaleResponse:
        """Create a PostgreSQL database. Non-2xx responses come back as ``error``."""
        body: dict[str, Any] = {"name": name, "cluster_size": cluster_size, "kind": "postgresql"}
        if region:
            body["region"] = region
        if replicas is not None:
            body["replicas"] = replicas

        logger.info(f"Creating PlanetScale database {name} in {organization}")
        response = await self._client.post(f"/organizations/{organization}/databases", json=body)

        if response.is_success:
            return PlanetScaleResponse(
                data=PlanetScaleDatabase.model_validate(response.json()), status_code=response.status_code
            )

        logger.warning(f"PlanetScale API returned {response.status_code} for database {name}")
        try:
            error = response.json()
        except ValueError:
            error = {"message": response.text or None}
        if not isinstance(error, dict):
            error = {"message": str(error)}
        return PlanetScaleResponse(error=error, status_code=response.status_code)
