"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clark import __version__
from clark.api import chats, connectors, endpoints
from clark.services.container import ServiceContainer, build_services
from clark.utils.logging import LogConfig, setup_logging


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI application around a service container."""
    services = services or build_services()
    setup_logging(LogConfig(level=services.settings.log_level))

    app = FastAPI(
        title="Clark",
        description=(
            "A conversational agent that builds applications in sandboxes, "
            "streaming model output and tool progress as server-sent events."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "Chat", "description": "Run agent turns and stream their events."},
            {"name": "Chats", "description": "Stored conversations, messages and resources."},
            {"name": "Connectors", "description": "External tool connectors merged into each turn."},
            {"name": "Models", "description": "Supported language models."},
            {"name": "Health", "description": "Service health monitoring and status checks."},
        ],
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(endpoints.router)
    app.include_router(chats.router)
    app.include_router(connectors.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clark.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
