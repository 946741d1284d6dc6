"""Exception hierarchy for partmon."""

from __future__ import annotations


class PartmonError(Exception):
    """Base exception for all partmon errors."""


class ConfigurationError(PartmonError):
    """Invalid configuration detected at startup."""


class StorageError(PartmonError):
    """Report store read or write failed."""

    def __init__(self, message: str, *, operation: str = "") -> None:
        self.operation = operation
        super().__init__(message)


class ConnectivityError(PartmonError):
    """MQTT broker could not be reached."""

    def __init__(self, message: str, *, broker: str = "", attempts: int = 0) -> None:
        self.broker = broker
        self.attempts = attempts
        super().__init__(message)


class DecodeError(PartmonError):
    """Inbound topic or payload could not be decoded."""
