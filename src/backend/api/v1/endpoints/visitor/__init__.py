"""
Visitor request endpoints.
"""

from . import requests

__all__ = ["requests"]
