"""Servicarr exceptions."""

from __future__ import annotations


class ServicarrError(Exception):
    """Base exception for all Servicarr errors."""


class ConfigurationIncompleteError(ServicarrError):
    """Raised when a notification channel is missing required settings.

    Detected before any network I/O is attempted.
    """


class DispatchError(ServicarrError):
    """Raised when a notification channel fails to deliver a message."""

    channel: str
    status_code: int | None

    def __init__(self, message: str, *, channel: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.channel = channel
        self.status_code = status_code


class TargetBlockedError(ServicarrError):
    """Raised when a check target points at a cloud metadata endpoint."""

    def __init__(self, message: str, *, host: str) -> None:
        super().__init__(message)
        self.host = host


class ServiceNotFoundError(ServicarrError):
    """Raised when an operation references an unknown service key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Service not found: {key}")
        self.key = key
