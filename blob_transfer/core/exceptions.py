"""Exception classes for the Blob Transfer Service."""

from typing import Optional

from transfer_schemas.transfer import ErrorKind


class TransferError(Exception):
    """
    Base exception class for all transfer errors.

    Every subclass carries an ErrorKind so the HTTP layer can map it to a
    response without inspecting the concrete type.
    """

    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.name = name


class InvalidInputError(TransferError):
    """
    Raised when the caller supplied something that can never be stored.
    """

    kind = ErrorKind.INVALID_INPUT


class EmptyInputError(InvalidInputError):
    """
    Raised when an upload has no file or zero bytes.
    """
    pass


class ObjectNotFoundError(TransferError):
    """
    Raised when a requested object has never been committed.
    """

    kind = ErrorKind.NOT_FOUND


class TransientStoreError(TransferError):
    """
    Raised when the store is throttling, unreachable or timing out.
    """

    kind = ErrorKind.TRANSIENT


class PermanentStoreError(TransferError):
    """
    Raised when the store rejects a request in a way a retry will not fix.
    """

    kind = ErrorKind.PERMANENT


class BlockListError(PermanentStoreError):
    """
    Raised when the receipts for a commit are not exactly blocks 0..n-1.
    """
    pass
