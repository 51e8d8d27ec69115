"""User entity module.

This module contains all User-related classes organized by responsibility:
- User: Domain entity and its enumerations
- UserTable: Database persistence model
- UserRepository: Data access layer
"""

from .entity import AuthProvider, RegistrationState, Role, User
from .repository import UserRepository, normalize_email
from .table import UserTable

__all__ = [
    "AuthProvider",
    "RegistrationState",
    "Role",
    "User",
    "UserRepository",
    "UserTable",
    "normalize_email",
]
