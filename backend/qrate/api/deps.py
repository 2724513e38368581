"""
Request-scoped dependencies.
"""

from fastapi import Path, Request

from qrate.services.interfaces.store import Store


def get_gateway(request: Request) -> Store:
    """The persistence gateway built at startup (see main.lifespan)."""
    return request.app.state.gateway


def event_code_param(code: str = Path(..., min_length=1, max_length=16)) -> str:
    """Event codes are case-insensitive on the way in."""
    return code.strip().upper()
