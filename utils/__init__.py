"""
Utils Module
Logging and the shared exception hierarchy.
"""
from .logger import setup_logger, setup_package_logging
from .exceptions import (
    BrainstormError,
    ChannelNotFoundError,
    ConfigurationError,
    GenerationError,
    InvalidOutputError,
    InvalidTransitionError,
    LLMError,
    RefinementError,
    RunNotFoundError,
    SeedValidationError,
    StorageError,
)

__all__ = [
    "setup_logger",
    "setup_package_logging",
    "BrainstormError",
    "ChannelNotFoundError",
    "ConfigurationError",
    "GenerationError",
    "InvalidOutputError",
    "InvalidTransitionError",
    "LLMError",
    "RefinementError",
    "RunNotFoundError",
    "SeedValidationError",
    "StorageError",
]
