"""Process-level settings loaded from the environment."""

import os
import tempfile
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_CLERK_API_BASE_URL = "https://api.clerk.com/v1"
DEFAULT_PLANETSCALE_API_BASE_URL = "https://api.planetscale.com/v1"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Configuration for the orchestration service.

    Credentials are optional here. A missing credential only fails the tool
    call that needs it.
    """

    anthropic_api_key: str | None = None
    clerk_platform_access_token: str | None = None
    clerk_api_base_url: str = DEFAULT_CLERK_API_BASE_URL
    planetscale_service_token_id: str | None = None
    planetscale_service_token: str | None = None
    planetscale_api_base_url: str = DEFAULT_PLANETSCALE_API_BASE_URL

    default_model_id: str | None = None
    max_steps: int = 20

    sandbox_root: str = field(default_factory=lambda: os.path.join(tempfile.gettempdir(), "clark-sandboxes"))

    rate_limit_enabled: bool = False
    requests_per_minute: int = 50
    tokens_per_minute: int = 400_000

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "Settings":
        """Build settings from environment variables, reading a .env file first if present."""
        load_dotenv(dotenv_path)

        defaults = cls()
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            clerk_platform_access_token=os.getenv("CLERK_PLATFORM_ACCESS_TOKEN"),
            clerk_api_base_url=os.getenv("CLERK_API_BASE_URL", DEFAULT_CLERK_API_BASE_URL),
            planetscale_service_token_id=os.getenv("PLANETSCALE_SERVICE_TOKEN_ID"),
            planetscale_service_token=os.getenv("PLANETSCALE_SERVICE_TOKEN"),
            planetscale_api_base_url=os.getenv("PLANETSCALE_API_BASE_URL", DEFAULT_PLANETSCALE_API_BASE_URL),
            default_model_id=os.getenv("CLARK_DEFAULT_MODEL"),
            max_steps=int(os.getenv("CLARK_MAX_STEPS", defaults.max_steps)),
            sandbox_root=os.getenv("CLARK_SANDBOX_ROOT", defaults.sandbox_root),
            rate_limit_enabled=_env_bool("CLARK_RATE_LIMIT_ENABLED", defaults.rate_limit_enabled),
            requests_per_minute=int(os.getenv("CLARK_REQUESTS_PER_MINUTE", defaults.requests_per_minute)),
            tokens_per_minute=int(os.getenv("CLARK_TOKENS_PER_MINUTE", defaults.tokens_per_minute)),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )
