"""
Shared fixtures: in-memory stand-ins for the Contacts framework and osascript.
"""

import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from macos_contacts_mcp.backend_loader import BackendLoader
from macos_contacts_mcp.contacts_manager import ContactsManager
from macos_contacts_mcp.contacts_store import (
    BASIC_PROPERTIES,
    ContactsBackend,
    STATUS_AUTHORIZED,
)
from macos_contacts_mcp.groups_interface import GroupsInterface

_EMPTY_FULL_FIELDS = {
    "jobTitle": "",
    "departmentName": "",
    "organizationName": "",
    "middleName": "",
    "note": "",
    "urlAddresses": [],
    "socialProfiles": [],
    "instantMessageAddresses": [],
}


class FakeContactsBackend(ContactsBackend):
    """
    In-memory ContactsBackend.

    Name search mimics the native predicate closely enough to exercise the
    fallbacks: a contact matches only when the whole query equals its first
    or last name (case-insensitive), so multi-word queries miss.
    """

    def __init__(self, status: str = STATUS_AUTHORIZED, status_after_prompt: str = STATUS_AUTHORIZED):
        self.status = status
        self.status_after_prompt = status_after_prompt
        self.records: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.access_requests = 0
        self.write_result = True
        self._ids = itertools.count(1)

    # Test helpers

    def seed(self, **fields) -> str:
        identifier = fields.pop("identifier", None) or f"ID-{next(self._ids)}"
        record = {
            "identifier": identifier,
            "firstName": "",
            "lastName": "",
            "nickname": "",
            "birthday": "",
            "phoneNumbers": [],
            "emailAddresses": [],
            "postalAddresses": [],
            **copy.deepcopy(_EMPTY_FULL_FIELDS),
        }
        record.update(fields)
        self.records[identifier] = record
        return identifier

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def _project(self, record, extra_properties):
        keys = list(BASIC_PROPERTIES) + list(extra_properties or [])
        return {k: copy.deepcopy(record[k]) for k in keys}

    # ContactsBackend

    def get_auth_status(self) -> str:
        self.calls.append(("get_auth_status",))
        return self.status

    def request_access(self) -> str:
        self.calls.append(("request_access",))
        self.access_requests += 1
        self.status = self.status_after_prompt
        return self.status

    def get_all_contacts(self, extra_properties: Optional[List[str]] = None):
        self.calls.append(("get_all_contacts", tuple(extra_properties or ())))
        return [self._project(r, extra_properties) for r in self.records.values()]

    def get_contacts_by_name(self, name: str, extra_properties: Optional[List[str]] = None):
        self.calls.append(("get_contacts_by_name", name, tuple(extra_properties or ())))
        q = name.lower()
        return [
            self._project(r, extra_properties)
            for r in self.records.values()
            if q and q in (r["firstName"].lower(), r["lastName"].lower())
        ]

    def add_new_contact(self, fields: Dict[str, Any]) -> bool:
        self.calls.append(("add_new_contact", copy.deepcopy(fields)))
        if not self.write_result:
            return False
        self.seed(**copy.deepcopy(fields))
        return True

    def update_contact(self, fields: Dict[str, Any]) -> bool:
        self.calls.append(("update_contact", copy.deepcopy(fields)))
        record = self.records.get(fields["identifier"])
        if record is None or not self.write_result:
            return False
        for key, value in fields.items():
            if value is not None:
                record[key] = copy.deepcopy(value)
        return True

    def delete_contact(self, identifier: str) -> bool:
        self.calls.append(("delete_contact", identifier))
        if not self.write_result:
            return False
        return self.records.pop(identifier, None) is not None


class FakeScriptRunner:
    """Records AppleScript sources and returns queued outputs (or raises queued errors)."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.scripts: List[str] = []

    def __call__(self, script: str) -> str:
        self.scripts.append(script)
        result = self.outputs.pop(0) if self.outputs else ""
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_backend():
    return FakeContactsBackend()


@pytest.fixture
def manager(fake_backend):
    return ContactsManager(BackendLoader(lambda: fake_backend))


@pytest.fixture
def script_runner():
    return FakeScriptRunner()


@pytest.fixture
def groups_interface(script_runner):
    return GroupsInterface(run_script=script_runner)


@pytest.fixture
def make_backend():
    """Factory for FakeContactsBackend with a given authorization status."""
    return FakeContactsBackend


@pytest.fixture
def make_runner():
    """Factory for FakeScriptRunner with queued outputs."""
    return FakeScriptRunner
