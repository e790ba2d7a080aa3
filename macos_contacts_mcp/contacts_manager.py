"""
Business logic layer for the Contacts MCP server.

Handles:
- Lazy backend acquisition and the access check before every call
- Search with a manual fallback when native name search misses
- Detail lookup by identifier (the store has no direct get-by-id)
- Partial updates that preserve fields the caller did not send
"""

import logging
from typing import Any, Dict, List, Optional

from macos_contacts_mcp.access import ensure_access
from macos_contacts_mcp.backend_loader import BackendLoader
from macos_contacts_mcp.contacts_store import ALL_EXTRA_PROPERTIES, ContactsBackend
from macos_contacts_mcp.errors import NotFoundError

logger = logging.getLogger(__name__)

# Scalar fields taken from the caller when given, else from the stored record
MERGED_FIELDS = [
    "firstName",
    "lastName",
    "nickname",
    "middleName",
    "jobTitle",
    "departmentName",
    "organizationName",
    "birthday",
]

# Sequence fields replaced wholesale when given, else left untouched
REPLACED_FIELDS = [
    "phoneNumbers",
    "emailAddresses",
    "urlAddresses",
]

CREATE_FIELDS = MERGED_FIELDS + REPLACED_FIELDS


def contact_matches_query(contact: Dict[str, Any], query: str) -> bool:
    """
    Permissive substring match used when native name search finds nothing.

    Args:
        contact: Basic contact record
        query: Already trimmed and lower-cased query

    Returns:
        True if the query appears in the full name, first name, last name,
        nickname or an email address (case-insensitive), or in a phone
        number (as typed)
    """
    first = (contact.get("firstName") or "").lower()
    last = (contact.get("lastName") or "").lower()
    full = f"{first} {last}".strip()

    return (
        query in full
        or query in first
        or query in last
        or query in (contact.get("nickname") or "").lower()
        or any(query in email.lower() for email in contact.get("emailAddresses") or [])
        or any(query in phone for phone in contact.get("phoneNumbers") or [])
    )


class ContactsManager:
    """
    Read and write contacts through a lazily loaded ContactsBackend.

    Args:
        loader: BackendLoader providing the backend
    """

    def __init__(self, loader: BackendLoader):
        self.loader = loader

    async def _backend(self) -> ContactsBackend:
        """Load the backend and check authorization."""
        backend = await self.loader.load()
        await ensure_access(backend)
        return backend

    async def get_auth_status(self) -> str:
        """Current authorization status, without prompting."""
        backend = await self.loader.load()
        return backend.get_auth_status()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    async def get_all_contacts(self) -> List[Dict[str, Any]]:
        backend = await self._backend()
        return backend.get_all_contacts()

    async def search_contacts(self, query: str) -> List[Dict[str, Any]]:
        """
        Search contacts by name.

        The native name predicate misses multi-word queries and some
        Unicode forms, so when it returns nothing every contact is scanned
        for a case-insensitive substring match instead.
        """
        backend = await self._backend()
        results = backend.get_contacts_by_name(query)
        if results:
            return results

        q = query.strip().lower()
        if not q:
            return results

        logger.debug(f"Native search found nothing for '{query}', scanning all contacts")
        return [c for c in backend.get_all_contacts() if contact_matches_query(c, q)]

    async def get_contact_details(self, identifier: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the full record for one contact.

        Looks up the contact's name from the basic list and searches by it
        with extra properties, to avoid loading extra properties for the
        whole address book. Falls back to a full scan when the contact has
        no name or the targeted search misses.

        Returns:
            Full contact dict, or None if no contact has this identifier
        """
        backend = await self._backend()

        basic_match = next(
            (c for c in backend.get_all_contacts() if c.get("identifier") == identifier),
            None
        )
        if basic_match:
            search_name = basic_match.get("firstName") or basic_match.get("lastName") or ""
            if search_name:
                detailed = backend.get_contacts_by_name(search_name, ALL_EXTRA_PROPERTIES)
                match = next((c for c in detailed if c.get("identifier") == identifier), None)
                if match:
                    return match

        logger.debug(f"Targeted lookup missed {identifier}, scanning with extra properties")
        all_detailed = backend.get_all_contacts(ALL_EXTRA_PROPERTIES)
        return next((c for c in all_detailed if c.get("identifier") == identifier), None)

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    async def create_contact(self, fields: Dict[str, Any]) -> bool:
        """
        Create a contact. firstName is required.

        The store does not return the new identifier; see
        find_created_identifier().
        """
        backend = await self._backend()
        payload = {k: fields[k] for k in CREATE_FIELDS if fields.get(k) is not None}
        success = backend.add_new_contact(payload)
        if success:
            logger.info(f"Created contact '{fields.get('firstName')}'")
        return success

    async def find_created_identifier(
        self,
        first_name: str,
        last_name: Optional[str] = None
    ) -> Optional[str]:
        """
        Recover the identifier of a just-created contact by name.

        With several contacts of the same name this returns the first one
        the store reports, which may not be the new record.
        """
        matches = await self.search_contacts(first_name)
        for contact in matches:
            if contact.get("firstName") != first_name:
                continue
            if last_name and contact.get("lastName") != last_name:
                continue
            return contact.get("identifier")
        return None

    async def update_contact(self, identifier: str, fields: Dict[str, Any]) -> bool:
        """
        Update some fields of a contact.

        Scalar fields not in `fields` keep their stored value. Phone, email
        and URL lists replace the stored lists when given and are left
        alone otherwise; there is no per-item merge.

        Raises:
            NotFoundError: If no contact has this identifier
        """
        current = await self.get_contact_details(identifier)
        if current is None:
            raise NotFoundError(f"Contact not found: {identifier}")

        payload: Dict[str, Any] = {"identifier": identifier}
        for key in MERGED_FIELDS:
            value = fields.get(key)
            payload[key] = value if value is not None else current.get(key, "")
        for key in REPLACED_FIELDS:
            payload[key] = fields.get(key)

        backend = await self._backend()
        success = backend.update_contact(payload)
        if success:
            logger.info(f"Updated contact {identifier}")
        return success

    async def delete_contact(self, identifier: str) -> bool:
        backend = await self._backend()
        success = backend.delete_contact(identifier)
        if success:
            logger.info(f"Deleted contact {identifier}")
        return success
