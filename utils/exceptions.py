"""
Custom Exceptions
Error taxonomy for the brainstorm pipeline.
"""


class BrainstormError(Exception):
    """Base error for the brainstorm pipeline."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BrainstormError):
    """Missing or invalid settings."""
    pass


class SeedValidationError(BrainstormError):
    """Seed rejected before a run was created."""

    def __init__(self, message: str, field: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.field = field


class StorageError(BrainstormError):
    """Persistence read/write failure."""

    def __init__(self, message: str, path: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.path = path


class RunNotFoundError(StorageError):
    """Run directory or state snapshot does not exist."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: {run_id}")
        self.run_id = run_id


class ChannelNotFoundError(BrainstormError):
    """No open event channel for the run."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found or finished: {run_id}")
        self.run_id = run_id


class InvalidTransitionError(BrainstormError):
    """Illegal stage status transition."""
    pass


class LLMError(BrainstormError):
    """LLM provider call failed."""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class GenerationError(BrainstormError):
    """Idea generation service failed."""
    pass


class InvalidOutputError(GenerationError):
    """Generation response could not be parsed into ideas."""

    def __init__(self, message: str, raw: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.raw = raw


class RefinementError(BrainstormError):
    """Refinement generation failed."""
    pass
