"""
Contact Store - persistence operations required by identity reconciliation
Defines the store contract and its SQLAlchemy implementation
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import select, update, or_, and_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import utcnow
from models.contact import Contact, LinkPrecedence
from .errors import StoreError

logger = logging.getLogger(__name__)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """
    Re-raise driver and ORM failures as StoreError, keeping the cause
    """
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Contact store failure during {operation}: {e}")
        raise StoreError(f"Contact store failed during {operation}", operation=operation) from e


class ContactStore(ABC):
    """
    Operations the identity resolver needs from persistent storage
    Soft-deleted contacts are invisible to every query
    """

    @abstractmethod
    async def find_matching(self, email: Optional[str], phone: Optional[str]) -> List[Contact]:
        """Contacts sharing the email or the phone, oldest first"""

    @abstractmethod
    async def create(
        self,
        email: Optional[str],
        phone: Optional[str],
        link_precedence: LinkPrecedence,
        linked_id: Optional[int] = None
    ) -> Contact:
        """Insert a contact and return it with its assigned id"""

    @abstractmethod
    async def demote_to_secondary(self, ids: Iterable[int], new_linked_id: int) -> None:
        """
        Turn the given contacts into secondaries of new_linked_id
        Contacts already linked to any of them are re-pointed as well
        """

    @abstractmethod
    async def find_cluster(self, primary_id: int) -> List[Contact]:
        """The primary and every contact linked to it, oldest first"""

    async def lock_identifiers(self, keys: Iterable[str]) -> None:
        """Hold store-level locks on identifier keys until the transaction ends"""
        return None


class SqlAlchemyContactStore(ContactStore):
    """
    ContactStore backed by an AsyncSession
    All operations run inside the session's transaction; committing is
    left to whoever owns the session
    """

    def __init__(self, session: AsyncSession, advisory_locks: bool = False):
        self.session = session
        self.advisory_locks = advisory_locks

    async def find_matching(self, email: Optional[str], phone: Optional[str]) -> List[Contact]:
        """Active contacts whose email or phone matches, oldest first"""
        conditions = []

        if email:
            conditions.append(Contact.email == email)
        if phone:
            conditions.append(Contact.phone_number == phone)

        if not conditions:
            return []

        query = select(Contact).where(
            and_(
                or_(*conditions),
                Contact.deleted_at.is_(None)  # Only active contacts
            )
        ).order_by(Contact.created_at, Contact.id)

        with translate_store_errors("find_matching"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def create(
        self,
        email: Optional[str],
        phone: Optional[str],
        link_precedence: LinkPrecedence,
        linked_id: Optional[int] = None
    ) -> Contact:
        """Add the contact and flush so the database assigns its id"""
        now = utcnow()
        contact = Contact(
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=LinkPrecedence(link_precedence).value,
            created_at=now,
            updated_at=now
        )

        with translate_store_errors("create"):
            self.session.add(contact)
            await self.session.flush()  # Get the ID
        return contact

    async def demote_to_secondary(self, ids: Iterable[int], new_linked_id: int) -> None:
        """One bulk UPDATE over the demoted contacts and everything linked to them"""
        ids = sorted(set(ids))
        if not ids:
            return

        statement = (
            update(Contact)
            .where(or_(Contact.id.in_(ids), Contact.linked_id.in_(ids)))
            .values(
                link_precedence=LinkPrecedence.SECONDARY.value,
                linked_id=new_linked_id,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )

        with translate_store_errors("demote_to_secondary"):
            await self.session.execute(statement)

    async def find_cluster(self, primary_id: int) -> List[Contact]:
        """Re-read the cluster, refreshing rows the session already holds"""
        query = (
            select(Contact)
            .where(
                and_(
                    or_(Contact.id == primary_id, Contact.linked_id == primary_id),
                    Contact.deleted_at.is_(None)
                )
            )
            .order_by(Contact.created_at, Contact.id)
            # Rows touched by a bulk demotion are already in the identity map
            .execution_options(populate_existing=True)
        )

        with translate_store_errors("find_cluster"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def lock_identifiers(self, keys: Iterable[str]) -> None:
        """Take a transaction-scoped PostgreSQL advisory lock per key, in sorted order"""
        if not self.advisory_locks:
            return

        with translate_store_errors("lock_identifiers"):
            for key in sorted(set(keys)):
                await self.session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": key}
                )
