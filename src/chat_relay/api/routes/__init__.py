"""API routes for the Chat Relay service."""

from chat_relay.api.routes.chat import router as chat_router
from chat_relay.api.routes.system import router as system_router

__all__ = ["chat_router", "system_router"]
