"""
Custom exceptions for the Bisna persistence layer.
"""

from typing import Any, Optional


class BisnaError(Exception):
    """Base exception for Bisna errors."""
    pass


class PersistenceFailure(BisnaError):
    """
    Raised when the persistence backend fails during a read or write.

    Attributes:
        operation (str): Operation that failed (save, delete, get, filter, transaction)
        entity_id (Any): Identifier involved in the operation, if any
        cause (Exception): Original backend error
    """

    def __init__(self, message: str, operation: str, entity_id: Any = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.entity_id = entity_id
        self.cause = cause

    def __str__(self):
        return self.message


class ProgrammingError(BisnaError):
    """Raised when the caller violates the contract of an operation."""
    pass


class InvalidClassError(BisnaError, TypeError):
    """Raised when a configured class does not extend the required base class."""

    @classmethod
    def missing_interface_implementation(cls, class_name: str, interface_name: str) -> "InvalidClassError":
        return cls(f'Class "{class_name}" does not implement "{interface_name}" interface.')
