"""ASGI application factory and dependencies for the Cartwise server."""

from cartwise.server.app import app, create_app

__all__ = ["app", "create_app"]
