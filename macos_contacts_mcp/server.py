#!/usr/bin/env python3
"""
macOS Contacts MCP Server.

Contact CRUD goes through the Contacts framework (PyObjC). Group
management and vCard export are scripted against Contacts.app with
AppleScript, addressing people and groups by exact name.

Usage:
    macos-contacts-mcp [--config PATH] [--log-level LEVEL]
    python -m macos_contacts_mcp
"""

import argparse
import asyncio
import logging
import sys
from functools import partial

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from macos_contacts_mcp.access import access_hint
from macos_contacts_mcp.backend_loader import BackendLoader
from macos_contacts_mcp.config import load_config, setup_logging
from macos_contacts_mcp.contacts_manager import ContactsManager, MERGED_FIELDS, REPLACED_FIELDS
from macos_contacts_mcp.contacts_store import PyObjCContactsBackend
from macos_contacts_mcp.errors import NotFoundError
from macos_contacts_mcp.groups_interface import GroupsInterface
from macos_contacts_mcp.responses import tool_error, tool_result
from macos_contacts_mcp.validation import (
    MAX_STRING_LENGTH,
    validate_contact_fields,
    validate_non_empty_string,
)

logger = logging.getLogger(__name__)

# Packaged defaults; run() applies the override file and environment
CONFIG = load_config(overrides=False)

# Initialize server
app = Server(CONFIG["server_name"], version=CONFIG["version"])


def build_contacts_manager(config: dict) -> ContactsManager:
    """Create the ContactsManager. The native backend is only loaded on first use."""
    factory = partial(PyObjCContactsBackend, fetch_notes=config["contacts"]["fetch_notes"])
    return ContactsManager(BackendLoader(factory))


# Initialize components
contacts_manager = build_contacts_manager(CONFIG)
groups = GroupsInterface()


def _string_property(description: str) -> dict:
    return {"type": "string", "maxLength": MAX_STRING_LENGTH, "description": description}


def _required_string_property(description: str) -> dict:
    return {**_string_property(description), "minLength": 1}


def _string_list_property(description: str) -> dict:
    return {"type": "array", "items": {"type": "string"}, "description": description}


CONTACT_FIELD_PROPERTIES = {
    "lastName": _string_property("Last name"),
    "nickname": _string_property("Nickname"),
    "middleName": _string_property("Middle name"),
    "jobTitle": _string_property("Job title"),
    "departmentName": _string_property("Department name"),
    "organizationName": _string_property("Organization / company name"),
    "birthday": {"type": "string", "description": "Birthday in YYYY-MM-DD format"},
    "phoneNumbers": _string_list_property("Phone numbers (E.164 format preferred, e.g. +14155551234)"),
    "emailAddresses": _string_list_property("Email addresses"),
    "urlAddresses": _string_list_property("URLs (website, social profile, etc.)"),
}

READ_ONLY = types.ToolAnnotations(readOnlyHint=True)
WRITE = types.ToolAnnotations(readOnlyHint=False)
DESTRUCTIVE = types.ToolAnnotations(readOnlyHint=False, destructiveHint=True)


def _schema(properties: dict, required: list) -> dict:
    return {"type": "object", "properties": properties, "required": required}


@app.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available MCP tools."""
    return [
        # Auth
        types.Tool(
            name="check_contacts_access",
            description=(
                "Check if the server has permission to access macOS Contacts. "
                "Returns the current authorization status."
            ),
            inputSchema=_schema({}, []),
            annotations=READ_ONLY
        ),
        # Contact CRUD
        types.Tool(
            name="search_contacts",
            description=(
                "Search for contacts by name. Matches across first name, last name, and full name. "
                "Returns basic contact info including identifiers for use with other tools."
            ),
            inputSchema=_schema(
                {"query": _required_string_property("Name to search for (first, last, or full name)")},
                ["query"]
            ),
            annotations=READ_ONLY
        ),
        types.Tool(
            name="get_all_contacts",
            description=(
                "Get all contacts from the address book. Returns basic info (name, phone, email) "
                "for every contact. For large address books, prefer search_contacts for targeted lookups."
            ),
            inputSchema=_schema({}, []),
            annotations=READ_ONLY
        ),
        types.Tool(
            name="get_contact_details",
            description=(
                "Get full details for a specific contact by their identifier. Returns extended "
                "properties including job title, organization, notes, social profiles, and more."
            ),
            inputSchema=_schema(
                {"identifier": _required_string_property(
                    "Contact identifier (from search_contacts or get_all_contacts results)"
                )},
                ["identifier"]
            ),
            annotations=READ_ONLY
        ),
        types.Tool(
            name="create_contact",
            description=(
                "Create a new contact in the macOS address book. "
                "Only firstName is required; all other fields are optional."
            ),
            inputSchema=_schema(
                {"firstName": _required_string_property("First name (required)"), **CONTACT_FIELD_PROPERTIES},
                ["firstName"]
            ),
            annotations=WRITE
        ),
        types.Tool(
            name="update_contact",
            description=(
                "Update an existing contact. Provide the contact's identifier and only the fields "
                "you want to change; other fields are left untouched. Phone numbers, emails and "
                "URLs replace the existing lists when given."
            ),
            inputSchema=_schema(
                {
                    "identifier": _required_string_property("Contact identifier to update"),
                    "firstName": _required_string_property("New first name"),
                    **CONTACT_FIELD_PROPERTIES,
                },
                ["identifier"]
            ),
            annotations=WRITE
        ),
        types.Tool(
            name="delete_contact",
            description="Permanently delete a contact from the macOS address book. This cannot be undone.",
            inputSchema=_schema(
                {"identifier": _required_string_property("Contact identifier to delete")},
                ["identifier"]
            ),
            annotations=DESTRUCTIVE
        ),
        # Groups (AppleScript)
        types.Tool(
            name="list_groups",
            description="List all contact groups in the macOS address book.",
            inputSchema=_schema({}, []),
            annotations=READ_ONLY
        ),
        types.Tool(
            name="create_group",
            description="Create a new contact group in the address book. Does nothing if it already exists.",
            inputSchema=_schema({"name": _required_string_property("Name for the new group")}, ["name"]),
            annotations=WRITE
        ),
        types.Tool(
            name="delete_group",
            description=(
                "Delete a contact group. The contacts in the group are NOT deleted; "
                "only the group itself is removed."
            ),
            inputSchema=_schema({"name": _required_string_property("Name of the group to delete")}, ["name"]),
            annotations=DESTRUCTIVE
        ),
        types.Tool(
            name="get_group_members",
            description="List all contacts that belong to a specific group.",
            inputSchema=_schema({"groupName": _required_string_property("Name of the group")}, ["groupName"]),
            annotations=READ_ONLY
        ),
        types.Tool(
            name="add_contact_to_group",
            description="Add an existing contact to a group. The contact must exist in the address book.",
            inputSchema=_schema(
                {
                    "contactName": _required_string_property('Full name of the contact (e.g. "John Doe")'),
                    "groupName": _required_string_property("Name of the group to add the contact to"),
                },
                ["contactName", "groupName"]
            ),
            annotations=WRITE
        ),
        types.Tool(
            name="remove_contact_from_group",
            description=(
                "Remove a contact from a group. The contact is NOT deleted; "
                "only the group membership is removed."
            ),
            inputSchema=_schema(
                {
                    "contactName": _required_string_property("Full name of the contact"),
                    "groupName": _required_string_property("Name of the group to remove the contact from"),
                },
                ["contactName", "groupName"]
            ),
            annotations=WRITE
        ),
        # Export
        types.Tool(
            name="export_contact_vcard",
            description=(
                "Export a contact as a vCard (VCF) string. "
                "The vCard can be saved to a .vcf file or shared."
            ),
            inputSchema=_schema(
                {"contactName": _required_string_property("Full name of the contact to export")},
                ["contactName"]
            ),
            annotations=READ_ONLY
        ),
    ]


def _contact_name(fields: dict) -> str:
    name = fields["firstName"]
    if fields.get("lastName"):
        name += f" {fields['lastName']}"
    return name


@app.call_tool()
async def handle_call_tool(name: str, arguments: dict) -> types.CallToolResult:
    """Handle MCP tool invocation."""
    arguments = arguments or {}

    try:
        if name == "check_contacts_access":
            status = await contacts_manager.get_auth_status()
            return tool_result({"status": status, "hint": access_hint(status)})

        elif name == "search_contacts":
            query, error = validate_non_empty_string(arguments.get("query"), "query")
            if error:
                return tool_error(error)

            results = await contacts_manager.search_contacts(query)
            return tool_result({"count": len(results), "contacts": results})

        elif name == "get_all_contacts":
            results = await contacts_manager.get_all_contacts()
            return tool_result({"count": len(results), "contacts": results})

        elif name == "get_contact_details":
            identifier, error = validate_non_empty_string(arguments.get("identifier"), "identifier")
            if error:
                return tool_error(error)

            contact = await contacts_manager.get_contact_details(identifier)
            if contact is None:
                return tool_result({"error": "Contact not found", "identifier": identifier})
            return tool_result(contact)

        elif name == "create_contact":
            first_name, error = validate_non_empty_string(arguments.get("firstName"), "firstName")
            if error:
                return tool_error(error)

            fields, error = validate_contact_fields(arguments, MERGED_FIELDS[1:], REPLACED_FIELDS)
            if error:
                return tool_error(error)
            fields["firstName"] = first_name

            success = await contacts_manager.create_contact(fields)
            if not success:
                return tool_result({"success": False, "message": "Failed to create contact"})

            identifier = await contacts_manager.find_created_identifier(first_name, fields.get("lastName"))
            return tool_result({
                "success": True,
                "message": f'Contact "{_contact_name(fields)}" created',
                "identifier": identifier
            })

        elif name == "update_contact":
            identifier, error = validate_non_empty_string(arguments.get("identifier"), "identifier")
            if error:
                return tool_error(error)

            fields, error = validate_contact_fields(arguments, MERGED_FIELDS, REPLACED_FIELDS)
            if error:
                return tool_error(error)
            if "firstName" in fields and not fields["firstName"].strip():
                return tool_error("Invalid firstName: cannot be empty")

            try:
                success = await contacts_manager.update_contact(identifier, fields)
            except NotFoundError:
                return tool_result({"success": False, "error": "Contact not found", "identifier": identifier})

            return tool_result({
                "success": success,
                "message": "Contact updated" if success else "Failed to update contact"
            })

        elif name == "delete_contact":
            identifier, error = validate_non_empty_string(arguments.get("identifier"), "identifier")
            if error:
                return tool_error(error)

            success = await contacts_manager.delete_contact(identifier)
            return tool_result({
                "success": success,
                "message": "Contact deleted" if success else "Failed to delete contact"
            })

        elif name == "list_groups":
            group_names = groups.list_groups()
            return tool_result({"count": len(group_names), "groups": group_names})

        elif name in ("create_group", "delete_group"):
            group_name, error = validate_non_empty_string(arguments.get("name"), "name", strip=False)
            if error:
                return tool_error(error)

            if name == "create_group":
                return tool_result(groups.create_group(group_name))
            return tool_result(groups.delete_group(group_name))

        elif name == "get_group_members":
            group_name, error = validate_non_empty_string(arguments.get("groupName"), "groupName", strip=False)
            if error:
                return tool_error(error)

            members = groups.get_group_members(group_name)
            return tool_result({"group": group_name, "count": len(members), "members": members})

        elif name in ("add_contact_to_group", "remove_contact_from_group"):
            contact_name, error = validate_non_empty_string(arguments.get("contactName"), "contactName", strip=False)
            if error:
                return tool_error(error)
            group_name, error = validate_non_empty_string(arguments.get("groupName"), "groupName", strip=False)
            if error:
                return tool_error(error)

            if name == "add_contact_to_group":
                return tool_result(groups.add_contact_to_group(contact_name, group_name))
            return tool_result(groups.remove_contact_from_group(contact_name, group_name))

        elif name == "export_contact_vcard":
            contact_name, error = validate_non_empty_string(arguments.get("contactName"), "contactName", strip=False)
            if error:
                return tool_error(error)

            vcard = groups.export_contact_vcard(contact_name)
            return tool_result({"contactName": contact_name, "vcard": vcard})

        else:
            return tool_error(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error handling tool {name}: {e}", exc_info=True)
        return tool_error(e)


def _log_uncaught_exception(exc_type, exc_value, exc_traceback):
    """sys.excepthook that records faults outside any tool call."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


def _log_loop_exception(loop, context):
    """Asyncio exception handler for errors in tasks nobody awaited."""
    exc = context.get("exception")
    logger.error(f"Unhandled asyncio error: {context.get('message')}", exc_info=exc)


async def main():
    """Run MCP server."""
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    logger.info(f"Starting MCP server {CONFIG['server_name']} v{CONFIG['version']}...")
    async with stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


def run():
    """Console entry point."""
    parser = argparse.ArgumentParser(description="macOS Contacts MCP server (stdio)")
    parser.add_argument("--config", help="Path to a JSON config file overriding the defaults")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    args = parser.parse_args()

    global CONFIG, contacts_manager
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        setup_logging(CONFIG, level=args.log_level)
        logger.critical(f"Cannot load configuration: {e}", exc_info=True)
        sys.exit(1)

    CONFIG = config
    app.name = CONFIG["server_name"]
    app.version = CONFIG["version"]
    contacts_manager = build_contacts_manager(CONFIG)

    setup_logging(CONFIG, level=args.log_level)
    sys.excepthook = _log_uncaught_exception

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("MCP server stopped")
    except Exception as e:
        logger.critical(f"Fatal error in MCP server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
