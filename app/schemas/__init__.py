# ruff: noqa: F403, F401
"""Schemas package initialization."""

# Import all schemas to ensure they're registered
from .base import *
from .chat import *
from .hypothesis import *
from .stream import *
from .vote import *

# Rebuild models to resolve forward references
from .chat import ChatRequest

ChatRequest.model_rebuild()
