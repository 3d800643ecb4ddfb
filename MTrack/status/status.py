"""Status definitions and exceptions for MTrack.

This module provides:
    - Status: enumeration of error kinds and application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., StorageError, NetworkError) for error handling in services
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Configuration status
    ConfigInvalid = enum.auto()

    # Local persistence status
    StorageFailed = enum.auto()

    # Authentication status
    ClientNotConfigured = enum.auto()
    NotAuthenticated = enum.auto()

    # Remote backup status
    RemoteUnavailable = enum.auto()
    NetworkFailed = enum.auto()
    BackupNotFound = enum.auto()
    BackupInvalid = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigInvalid: 'The configuration seems to be incomplete, or contains invalid values.',

    Status.StorageFailed: 'Failed to save your data. Storage may be full.',

    Status.ClientNotConfigured: 'Google Drive backup is not available: no Google client id is configured.',
    Status.NotAuthenticated: 'Authentication error. Try signing in again to your Google account.',

    Status.RemoteUnavailable: 'Google Drive backup could not be initialized and has been disabled.',
    Status.NetworkFailed: 'Google Drive request failed. Please check your connection.',
    Status.BackupNotFound: 'No backup file found in Google Drive.',
    Status.BackupInvalid: 'The backup file in Google Drive is damaged or has an unexpected format.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in MTrack.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.message = message or self.status_message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(self.message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class ConfigInvalidError(BaseStatusException):
    """Raised when settings.json or client_secret.json is malformed."""
    status = Status.ConfigInvalid


class StorageError(BaseStatusException):
    """Raised when the local store rejects a write."""
    status = Status.StorageFailed


class AuthError(BaseStatusException):
    """Raised when signing in fails, consent is denied or the token is rejected."""
    status = Status.NotAuthenticated


class ClientNotConfiguredError(AuthError):
    """Raised when no Google OAuth client is configured."""
    status = Status.ClientNotConfigured


class InitError(BaseStatusException):
    """Raised when the remote backup adapter cannot be initialized."""
    status = Status.RemoteUnavailable


class NetworkError(BaseStatusException):
    """Raised when a Google Drive request fails.

    Attributes:
        http_status (Optional[int]): HTTP status code of the failed response, if any.
    """
    status = Status.NetworkFailed

    def __init__(self, message: str = None, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)


class NotFoundError(BaseStatusException):
    """Raised when a restore is attempted before any backup exists."""
    status = Status.BackupNotFound


class BackupInvalidError(BaseStatusException):
    """Raised when the remote backup file is not a valid snapshot."""
    status = Status.BackupInvalid
