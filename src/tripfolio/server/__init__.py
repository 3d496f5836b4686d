"""ASGI application factory and dependencies for the Tripfolio server."""

from tripfolio.server.app import app, create_app

__all__ = ["app", "create_app"]
