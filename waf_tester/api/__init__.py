"""HTTP API for running and streaming tests."""

from .server import create_app

__all__ = ["create_app"]
