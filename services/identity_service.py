"""
Identity Service - Core business logic for identity reconciliation
Handles contact matching, primary/secondary classification, cluster merging
and building the consolidated response
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, AsyncIterator, Callable, List, Optional, Sequence, Tuple

from config import settings
from database import DatabaseManager, db_manager
from models.contact import Contact, LinkPrecedence
from schemas.identify import IdentifyRequest, IdentifyResponse, ContactResponse
from .contact_store import ContactStore, SqlAlchemyContactStore, translate_store_errors
from .errors import InvalidRequest
from .locks import IdentifierLocks, identifier_lock_keys

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], AsyncContextManager[ContactStore]]


@dataclass
class ClusterView:
    """Consolidated contact points of one identity cluster"""
    primary_contact_id: int
    emails: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)
    secondary_contact_ids: List[int] = field(default_factory=list)


def _clean_identifier(value: Any, field_name: str) -> Optional[str]:
    """Single identifier as a non-blank string or None"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"{field_name} must be a string", field=field_name)
    if not value.strip():
        return None
    return value


def normalize_identifiers(email: Any, phone: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Validate the identifiers of a request
    Empty strings count as absent; at least one identifier must remain
    """
    email = _clean_identifier(email, "email")
    phone = _clean_identifier(phone, "phoneNumber")
    if email is None and phone is None:
        raise InvalidRequest("Either email or phoneNumber must be provided")
    return email, phone


def build_cluster_view(primary_id: int, members: Sequence[Contact]) -> ClusterView:
    """
    Collapse a cluster's membership into its consolidated view

    The primary's own email and phone lead their lists; the remaining
    distinct values and the secondary ids follow membership order.
    """
    primary = next((contact for contact in members if contact.id == primary_id), None)

    emails = []
    phone_numbers = []
    if primary is not None:
        if primary.email:
            emails.append(primary.email)
        if primary.phone_number:
            phone_numbers.append(primary.phone_number)

    secondary_ids = []
    for contact in members:
        if contact.email and contact.email not in emails:
            emails.append(contact.email)
        if contact.phone_number and contact.phone_number not in phone_numbers:
            phone_numbers.append(contact.phone_number)
        if contact.id != primary_id:
            secondary_ids.append(contact.id)

    return ClusterView(
        primary_contact_id=primary_id,
        emails=emails,
        phone_numbers=phone_numbers,
        secondary_contact_ids=secondary_ids
    )


class IdentityResolver:
    """
    Reconciliation algorithm over a single ContactStore

    Algorithm:
    1. Find existing contacts matching email or phone
    2. If no matches -> create new primary contact
    3. If matches found -> the oldest cluster they touch survives
    4. New email or phone -> create secondary contact under the survivor
    5. Other clusters touched -> demote their primaries into the survivor
    6. Re-read the survivor's cluster and consolidate it
    """

    def __init__(self, store: ContactStore):
        self.store = store

    async def resolve(self, email: Any, phone: Any) -> ClusterView:
        """
        Resolve one request against the store

        The survivor is chosen by cluster root: every match stands for the
        primary of its cluster (itself, or the contact its linked_id names)
        and the oldest of those primaries is kept, so a match on an older
        cluster's secondary merges a newer matched primary into it.
        """
        email, phone = normalize_identifiers(email, phone)

        matches = await self.store.find_matching(email, phone)

        if not matches:
            contact = await self.store.create(email, phone, LinkPrecedence.PRIMARY)
            logger.info(f"Created primary contact {contact.id}")
            return build_cluster_view(contact.id, [contact])

        # Ids grow with creation order, so the lowest cluster id is the oldest primary
        cluster_ids = {contact.cluster_id for contact in matches}
        primary_id = min(cluster_ids)

        if self._has_new_information(matches, email, phone):
            secondary = await self.store.create(
                email, phone, LinkPrecedence.SECONDARY, linked_id=primary_id
            )
            logger.info(f"Created secondary contact {secondary.id} linked to {primary_id}")

        demoted = cluster_ids - {primary_id}
        if demoted:
            await self.store.demote_to_secondary(demoted, primary_id)
            logger.info(f"Merged clusters {sorted(demoted)} into primary contact {primary_id}")

        members = await self.store.find_cluster(primary_id)
        return build_cluster_view(primary_id, members)

    def _has_new_information(
        self,
        matches: Sequence[Contact],
        email: Optional[str],
        phone: Optional[str]
    ) -> bool:
        """
        Check if the request carries an email or phone no matched contact has
        """
        known_emails = {contact.email for contact in matches if contact.email}
        known_phones = {contact.phone_number for contact in matches if contact.phone_number}

        has_new_email = email is not None and email not in known_emails
        has_new_phone = phone is not None and phone not in known_phones

        return has_new_email or has_new_phone


class IdentityService:
    """
    Runs identity resolution inside one store transaction, serialized
    against concurrent calls on the same identifiers
    """

    def __init__(
        self,
        store_factory: Optional[StoreFactory] = None,
        database: Optional[DatabaseManager] = None,
        locks: Optional[IdentifierLocks] = None
    ):
        self.db_manager = database or db_manager
        self.store_factory = store_factory or self._database_store
        self.locks = locks or IdentifierLocks()

    def use_advisory_locks(self) -> bool:
        """Advisory locks need both the setting and a PostgreSQL database"""
        return settings.DB_ADVISORY_LOCKS and self.db_manager.dialect_name == "postgresql"

    @asynccontextmanager
    async def _database_store(self) -> AsyncIterator[ContactStore]:
        """SqlAlchemyContactStore over a fresh session, committed on exit"""
        async with self.db_manager.get_session() as session:
            yield SqlAlchemyContactStore(session, advisory_locks=self.use_advisory_locks())

    async def resolve(self, email: Any, phone: Any) -> ClusterView:
        """Resolve under identifier locks inside one store transaction"""
        email, phone = normalize_identifiers(email, phone)
        keys = identifier_lock_keys(email, phone)

        async with self.locks.acquire(keys):
            with translate_store_errors("transaction"):
                async with self.store_factory() as store:
                    await store.lock_identifiers(keys)
                    return await IdentityResolver(store).resolve(email, phone)

    async def identify_contact(self, request: IdentifyRequest) -> IdentifyResponse:
        """
        Resolve an /identify request into its consolidated contact response
        """
        view = await self.resolve(request.email, request.phoneNumber)

        return IdentifyResponse(
            contact=ContactResponse(
                primaryContactId=view.primary_contact_id,
                emails=view.emails,
                phoneNumbers=view.phone_numbers,
                secondaryContactIds=view.secondary_contact_ids
            )
        )


# Global service instance
identity_service = IdentityService()
