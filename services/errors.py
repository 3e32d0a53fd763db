"""
Error types raised by the identity reconciliation services
"""

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    INVALID_REQUEST = "invalid_request"
    STORE_ERROR = "store_error"


class IdentityError(Exception):
    """Base class for errors surfaced by the identity service"""
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(IdentityError):
    """
    Missing or malformed identifiers
    Raised before the contact store is touched
    """
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StoreError(IdentityError):
    """
    Failure reported by the contact store
    The underlying exception is chained as __cause__
    """
    kind = ErrorKind.STORE_ERROR

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
