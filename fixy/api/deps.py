"""Shared FastAPI dependencies."""

from fastapi import Request

from fixy.services.container import Services


def get_services(request: Request) -> Services:
    """Return the component graph built at startup."""
    return request.app.state.services
