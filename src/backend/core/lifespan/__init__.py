"""
Application lifespan management.

Startup creates tables and starts the expiry sweep; shutdown reverses it.
"""

from .manager import lifespan

__all__ = ["lifespan"]
