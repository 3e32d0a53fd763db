"""
Business logic services for Identity Reconciliation API
Contains core identity reconciliation algorithms, the contact store
contract and its SQLAlchemy implementation.
"""

from .contact_store import ContactStore, SqlAlchemyContactStore
from .errors import ErrorKind, IdentityError, InvalidRequest, StoreError
from .identity_service import ClusterView, IdentityResolver, IdentityService, identity_service
from .locks import IdentifierLocks

# Export all services for easy importing
__all__ = [
    "ClusterView",
    "ContactStore",
    "ErrorKind",
    "IdentifierLocks",
    "IdentityError",
    "IdentityResolver",
    "IdentityService",
    "InvalidRequest",
    "SqlAlchemyContactStore",
    "StoreError",
    "identity_service"
]
