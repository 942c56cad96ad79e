"""Exception types raised by the persistence layer and services."""

from typing import List


class EduCMSError(Exception):
    """Base class for every error raised on purpose by this package."""


class InvalidArgumentError(EduCMSError, ValueError):
    """A required argument was missing (``None``)."""

    def __init__(self, name: str):
        super().__init__(f"{name} must not be None")
        self.name = name


class StudentValidationError(EduCMSError, ValueError):
    """One or more business rules were violated.

    ``errors`` holds every violated rule so callers can report all of
    them at once.
    """

    def __init__(self, errors: List[str]):
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = list(errors)


class TransactionStateError(EduCMSError, RuntimeError):
    """Transaction methods were called in the wrong order."""


class TransactionAlreadyInProgressError(TransactionStateError):
    def __init__(self):
        super().__init__("A transaction is already in progress.")


class NoTransactionError(TransactionStateError):
    def __init__(self):
        super().__init__("No transaction is in progress.")


class UnitOfWorkDisposedError(TransactionStateError):
    def __init__(self):
        super().__init__("The unit of work has been disposed.")
