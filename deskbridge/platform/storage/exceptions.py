"""Storage exceptions for deskbridge."""

from deskbridge.core.exceptions import DeskbridgeException


class StorageException(DeskbridgeException):
    """Raised when an export, manifest or sandbox file cannot be read or written."""

    pass


class StorageNotFoundError(StorageException):
    """Raised when a requested document does not exist."""

    pass
