# vaultrelay/api/dependencies.py

from fastapi import Request

from vaultrelay.services.relay_service import RelayService


def get_relay(request: Request) -> RelayService:
    """The relay owned by this app instance (set up in create_app)."""
    return request.app.state.relay
