"""
Error types for the Contacts MCP server.

Every tool handler converts these (and any other exception) into a
failure payload, so they never reach the MCP transport as protocol faults.
"""

CONTACTS_SETTINGS_HELP = (
    "Please enable Contacts access in System Settings > Privacy & Security > Contacts."
)

TCC_RESET_HELP = "You may need to run: tccutil reset AddressBook <bundle-id>"

APPLESCRIPT_ERROR_PREFIX = "AppleScript error:"


class ContactsError(Exception):
    """Base class for Contacts server errors."""
    pass


class AccessDeniedError(ContactsError):
    """Raised when Contacts authorization is not granted."""
    pass


class BackendUnavailableError(ContactsError):
    """Raised when the native Contacts framework cannot be loaded."""
    pass


class NotFoundError(ContactsError):
    """Raised when a group or contact the backend explicitly reports is absent."""
    pass


class AppleScriptError(ContactsError):
    """Raised when an osascript invocation fails or times out."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"{APPLESCRIPT_ERROR_PREFIX} {detail}")
