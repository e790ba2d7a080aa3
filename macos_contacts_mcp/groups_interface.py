"""
Contact group management and vCard export via AppleScript.

Groups in Contacts.app have no stable identifier visible to AppleScript,
so every operation here addresses groups and people by exact name.
"""

import logging
from typing import Callable, Dict, List, Optional

from macos_contacts_mcp.applescript import escape_applescript_string, run_applescript
from macos_contacts_mcp.errors import NotFoundError

logger = logging.getLogger(__name__)

GROUP_NOT_FOUND = "GROUP_NOT_FOUND"

# Separator osascript uses when printing a list result
LIST_SEPARATOR = ", "


def parse_name_list(output: str) -> List[str]:
    """Split osascript list output into names. Empty output means no names."""
    if not output:
        return []
    return output.split(LIST_SEPARATOR)


class GroupsInterface:
    """
    Interface to Contacts.app groups.

    Args:
        run_script: Callable that executes AppleScript source and returns
            its trimmed output (default: run_applescript)
    """

    def __init__(self, run_script: Optional[Callable[[str], str]] = None):
        self.run_script = run_script or run_applescript

    def list_groups(self) -> List[str]:
        """Get the names of all groups."""
        script = 'tell application "Contacts" to return name of every group'
        return parse_name_list(self.run_script(script))

    def create_group(self, name: str) -> Dict[str, object]:
        """
        Create a group unless one with that name already exists.

        Returns:
            Dict with success (always True) and a message saying whether
            the group was created or already existed
        """
        escaped = escape_applescript_string(name)
        script = f'''
tell application "Contacts"
    if not (exists group "{escaped}") then
        make new group at end with properties {{name:"{escaped}"}}
        save
        return "created"
    else
        return "exists"
    end if
end tell
'''
        result = self.run_script(script)
        if result == "created":
            logger.info(f"Created group '{name}'")
            return {"success": True, "message": f'Group "{name}" created'}
        return {"success": True, "message": f'Group "{name}" already exists'}

    def delete_group(self, name: str) -> Dict[str, object]:
        """
        Delete a group. Member contacts are not deleted.

        Returns:
            Dict with success and message; success is False if the group
            does not exist
        """
        escaped = escape_applescript_string(name)
        script = f'''
tell application "Contacts"
    if exists group "{escaped}" then
        delete group "{escaped}"
        save
        return "deleted"
    else
        return "not_found"
    end if
end tell
'''
        result = self.run_script(script)
        if result == "not_found":
            return {"success": False, "message": f'Group "{name}" not found'}
        logger.info(f"Deleted group '{name}'")
        return {"success": True, "message": f'Group "{name}" deleted'}

    def get_group_members(self, group_name: str) -> List[str]:
        """
        Get display names of the people in a group.

        Each member is named "first last", falling back to whichever name
        component exists, or "(unnamed)".

        Raises:
            NotFoundError: If the group does not exist
        """
        escaped = escape_applescript_string(group_name)
        script = f'''
tell application "Contacts"
    if not (exists group "{escaped}") then
        return "{GROUP_NOT_FOUND}"
    end if
    set memberNames to {{}}
    repeat with p in people of group "{escaped}"
        set fullName to ""
        try
            set fullName to (first name of p) & " " & (last name of p)
        on error
            try
                set fullName to first name of p
            on error
                try
                    set fullName to last name of p
                on error
                    set fullName to "(unnamed)"
                end try
            end try
        end try
        set end of memberNames to fullName
    end repeat
    set AppleScript's text item delimiters to "{LIST_SEPARATOR}"
    return memberNames as text
end tell
'''
        result = self.run_script(script)
        if result == GROUP_NOT_FOUND:
            raise NotFoundError(f'Group "{group_name}" not found')
        return parse_name_list(result)

    def add_contact_to_group(self, contact_name: str, group_name: str) -> Dict[str, object]:
        """
        Add the first person named exactly contact_name to a group.

        A missing person or group surfaces as an AppleScriptError.
        """
        script = f'''
tell application "Contacts"
    set thePerson to first person whose name is "{escape_applescript_string(contact_name)}"
    add thePerson to group "{escape_applescript_string(group_name)}"
    save
    return "added"
end tell
'''
        self.run_script(script)
        logger.info(f"Added '{contact_name}' to group '{group_name}'")
        return {
            "success": True,
            "message": f'Added "{contact_name}" to group "{group_name}"'
        }

    def remove_contact_from_group(self, contact_name: str, group_name: str) -> Dict[str, object]:
        """Remove the first person named exactly contact_name from a group."""
        script = f'''
tell application "Contacts"
    remove (first person whose name is "{escape_applescript_string(contact_name)}") from group "{escape_applescript_string(group_name)}"
    save
    return "removed"
end tell
'''
        self.run_script(script)
        logger.info(f"Removed '{contact_name}' from group '{group_name}'")
        return {
            "success": True,
            "message": f'Removed "{contact_name}" from group "{group_name}"'
        }

    def export_contact_vcard(self, contact_name: str) -> str:
        """Return the vCard text of the first person named exactly contact_name."""
        script = f'''
tell application "Contacts"
    return vcard of (first person whose name is "{escape_applescript_string(contact_name)}") as text
end tell
'''
        return self.run_script(script)
