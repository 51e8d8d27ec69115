"""Shared pytest fixtures for identity tests."""

from .core import *  # noqa: F401,F403
from .services import *  # noqa: F401,F403
