"""
Repository layer for database operations.

This package contains all data access logic isolated from business logic.
Each repository handles CRUD operations for a specific entity.
"""

from repositories.base_repository import BaseRepository
from repositories.user_repository import UserRepository
from repositories.visitor_request_repository import VisitorRequestRepository

__all__ = ["BaseRepository", "UserRepository", "VisitorRequestRepository"]
