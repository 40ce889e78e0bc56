"""
Persistence Layer

Repository contract for the progression engine plus the in-process
implementation used by simulations and tests.
"""
from .base import CohortClock, ProgressionRepository
from .memory import InMemoryRepository

__all__ = [
    "CohortClock",
    "ProgressionRepository",
    "InMemoryRepository",
]
