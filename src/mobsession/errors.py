"""Exceptions raised while starting a mob session."""

from __future__ import annotations


class MobSessionError(Exception):
    """Base exception for mob session operations."""

    pass


class ConfigError(MobSessionError):
    """Configuration loading or parsing error."""

    pass


class NoRepositoryError(MobSessionError):
    """No usable git repository could be resolved for the project."""

    pass


class InspectError(MobSessionError):
    """The repository could not be read while computing branch topology."""

    pass


class InvalidConfigError(MobSessionError):
    """Configuration failed start validation. Carries the first violated rule."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidRepositoryStateError(MobSessionError):
    """Repository is in a state that does not allow starting a session."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class GitOperationError(MobSessionError):
    """A single git operation failed."""

    def __init__(self, operation: str, diagnostic: str):
        super().__init__(f"{operation} failed: {diagnostic}")
        self.operation = operation
        self.diagnostic = diagnostic


class NonFatalServiceWarning(MobSessionError):
    """A collaborator (timer, share) could not do its job. Never aborts a run."""

    def __init__(self, service: str, reason: str):
        super().__init__(f"{service}: {reason}")
        self.service = service
        self.reason = reason


class SessionCancelledError(MobSessionError):
    """The host asked the run to stop between two states."""

    pass


__all__ = [
    "MobSessionError",
    "ConfigError",
    "NoRepositoryError",
    "InspectError",
    "InvalidConfigError",
    "InvalidRepositoryStateError",
    "GitOperationError",
    "NonFatalServiceWarning",
    "SessionCancelledError",
]
