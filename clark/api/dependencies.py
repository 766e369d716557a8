"""Request-scoped access to the service container."""

from fastapi import Request

from clark.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
