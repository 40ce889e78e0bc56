"""
Utilities Package - Logging and Exception Handling
"""
from nephrosim.config import settings

from .logging import get_logger, setup_logging
from .exceptions import (
    ProgressionEngineError,
    NotFoundError,
    SequenceError,
    CycleLimitExceeded,
    PersistenceFailure,
    InvalidInputError,
)

setup_logging(settings.log_level, settings.log_file)

__all__ = [
    "get_logger",
    "setup_logging",
    "ProgressionEngineError",
    "NotFoundError",
    "SequenceError",
    "CycleLimitExceeded",
    "PersistenceFailure",
    "InvalidInputError",
]
