"""HTTP transport for the agent core."""

from .main import create_app

__all__ = ["create_app"]
