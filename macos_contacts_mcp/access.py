"""
Contacts authorization gate.

Every operation on the structured backend calls ensure_access() first.
AppleScript operations are not gated here; macOS shows its separate
Automation prompt on the first osascript call to Contacts.app.
"""

import asyncio
import logging

from macos_contacts_mcp.contacts_store import (
    ContactsBackend,
    STATUS_AUTHORIZED,
    STATUS_DENIED,
    STATUS_LIMITED,
    STATUS_NOT_DETERMINED,
    STATUS_RESTRICTED,
)
from macos_contacts_mcp.errors import AccessDeniedError, CONTACTS_SETTINGS_HELP, TCC_RESET_HELP

logger = logging.getLogger(__name__)

GRANTED_STATUSES = (STATUS_AUTHORIZED, STATUS_LIMITED)

ACCESS_HINTS = {
    STATUS_NOT_DETERMINED: (
        "Permission has not been requested yet. The first contact operation "
        "will trigger the system prompt."
    ),
    STATUS_DENIED: (
        "Permission was denied. The user needs to enable Contacts access for the "
        "MCP host application in System Settings > Privacy & Security > Contacts."
    ),
    STATUS_RESTRICTED: (
        "Contacts access is restricted by a device policy (e.g. parental controls "
        "or MDM) and cannot be granted from System Settings."
    ),
    STATUS_LIMITED: (
        "Access is limited to the contacts the user selected; results may be incomplete."
    ),
}


def access_hint(status: str) -> str:
    """Remediation hint for an authorization status ("" when none applies)."""
    return ACCESS_HINTS.get(status, "")


async def ensure_access(backend: ContactsBackend) -> None:
    """
    Ensure the process may read and write Contacts.

    - authorized / limited: returns immediately
    - not_determined: triggers the macOS permission prompt once and
      checks the result
    - denied / restricted / anything else: fails without prompting

    Raises:
        AccessDeniedError: If access is not granted
    """
    status = backend.get_auth_status()

    if status in GRANTED_STATUSES:
        return

    if status == STATUS_NOT_DETERMINED:
        logger.info("Contacts access not determined, requesting access...")
        # Blocks until the user answers the system dialog
        result = await asyncio.to_thread(backend.request_access)
        if result in GRANTED_STATUSES:
            logger.info(f"Contacts access granted ({result})")
            return
        logger.warning(f"Contacts access not granted after prompt: {result}")
        raise AccessDeniedError(
            f"Contacts access was not granted (status after prompt: {result}). "
            f"{CONTACTS_SETTINGS_HELP}"
        )

    message = f'Contacts access is currently "{status}". {CONTACTS_SETTINGS_HELP}'
    if status == STATUS_DENIED:
        message += f" {TCC_RESET_HELP}"
    logger.warning(f"Contacts access refused: {status}")
    raise AccessDeniedError(message)
