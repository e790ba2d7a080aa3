"""
Unit tests for ContactsManager: search fallback, detail resolution and
partial updates.
"""

import pytest

from macos_contacts_mcp.backend_loader import BackendLoader
from macos_contacts_mcp.contacts_manager import ContactsManager, contact_matches_query
from macos_contacts_mcp.contacts_store import ALL_EXTRA_PROPERTIES, STATUS_DENIED
from macos_contacts_mcp.errors import AccessDeniedError, BackendUnavailableError, NotFoundError


@pytest.fixture
def seeded(fake_backend):
    """Address book with a few representative contacts."""
    ids = {
        "jane": fake_backend.seed(
            firstName="Jane",
            lastName="Doe",
            nickname="JD",
            phoneNumbers=["+14155551234"],
            emailAddresses=["Jane.Doe@Example.com"],
            jobTitle="Engineer",
            organizationName="Acme",
        ),
        "jose": fake_backend.seed(firstName="José", lastName="Núñez"),
        "nameless": fake_backend.seed(emailAddresses=["info@corp.example"], organizationName="Corp"),
    }
    fake_backend.calls.clear()
    return ids


# =============================================================================
# contact_matches_query
# =============================================================================

def test_matches_full_name_substring():
    contact = {"firstName": "Jane", "lastName": "Doe"}
    assert contact_matches_query(contact, "jane doe")
    assert contact_matches_query(contact, "ne do")


def test_matches_nickname_and_email_case_insensitive():
    contact = {"firstName": "", "lastName": "", "nickname": "Bubba", "emailAddresses": ["Big@Example.COM"]}
    assert contact_matches_query(contact, "bubb")
    assert contact_matches_query(contact, "big@example")


def test_matches_phone_without_case_folding():
    contact = {"firstName": "", "lastName": "", "phoneNumbers": ["+1 (415) 555-1234"]}
    assert contact_matches_query(contact, "555-12")
    assert not contact_matches_query(contact, "5551234")


def test_no_match_with_missing_fields():
    assert not contact_matches_query({}, "anything")


# =============================================================================
# search_contacts
# =============================================================================

@pytest.mark.asyncio
async def test_search_native_hit_skips_fallback(manager, fake_backend, seeded):
    results = await manager.search_contacts("Jane")

    assert [c["identifier"] for c in results] == [seeded["jane"]]
    assert fake_backend.calls_to("get_all_contacts") == []


@pytest.mark.asyncio
async def test_search_multi_word_uses_fallback(manager, fake_backend, seeded):
    results = await manager.search_contacts("jane doe")

    assert [c["identifier"] for c in results] == [seeded["jane"]]
    assert len(fake_backend.calls_to("get_all_contacts")) == 1


@pytest.mark.asyncio
async def test_search_fallback_matches_email_and_phone(manager, seeded):
    by_email = await manager.search_contacts("info@corp")
    by_phone = await manager.search_contacts("555123")

    assert [c["identifier"] for c in by_email] == [seeded["nameless"]]
    assert [c["identifier"] for c in by_phone] == [seeded["jane"]]


@pytest.mark.asyncio
async def test_search_fallback_unicode_substring(manager, seeded):
    results = await manager.search_contacts("josé nú")
    assert [c["identifier"] for c in results] == [seeded["jose"]]


@pytest.mark.asyncio
async def test_search_whitespace_query_skips_fallback(manager, fake_backend, seeded):
    results = await manager.search_contacts("   ")

    assert results == []
    assert fake_backend.calls_to("get_all_contacts") == []


@pytest.mark.asyncio
async def test_search_no_match_returns_empty(manager, seeded):
    assert await manager.search_contacts("zzz") == []


# =============================================================================
# get_contact_details
# =============================================================================

@pytest.mark.asyncio
async def test_details_targeted_search(manager, fake_backend, seeded):
    contact = await manager.get_contact_details(seeded["jane"])

    assert contact["identifier"] == seeded["jane"]
    assert contact["jobTitle"] == "Engineer"
    assert fake_backend.calls_to("get_contacts_by_name") == [
        ("get_contacts_by_name", "Jane", tuple(ALL_EXTRA_PROPERTIES))
    ]
    # Only the basic listing, no full scan with extra properties
    assert fake_backend.calls_to("get_all_contacts") == [("get_all_contacts", ())]


@pytest.mark.asyncio
async def test_details_nameless_contact_skips_targeted_search(manager, fake_backend, seeded):
    contact = await manager.get_contact_details(seeded["nameless"])

    assert contact["organizationName"] == "Corp"
    assert fake_backend.calls_to("get_contacts_by_name") == []
    assert ("get_all_contacts", tuple(ALL_EXTRA_PROPERTIES)) in fake_backend.calls


@pytest.mark.asyncio
async def test_details_uses_last_name_when_first_is_empty(manager, fake_backend):
    identifier = fake_backend.seed(lastName="Cher")

    contact = await manager.get_contact_details(identifier)

    assert contact["identifier"] == identifier
    assert fake_backend.calls_to("get_contacts_by_name")[0][1] == "Cher"


@pytest.mark.asyncio
async def test_details_falls_back_when_targeted_search_misses(manager, fake_backend, seeded, monkeypatch):
    monkeypatch.setattr(fake_backend, "get_contacts_by_name", lambda name, extra=None: [])

    contact = await manager.get_contact_details(seeded["jane"])

    assert contact["identifier"] == seeded["jane"]
    assert ("get_all_contacts", tuple(ALL_EXTRA_PROPERTIES)) in fake_backend.calls


@pytest.mark.asyncio
async def test_details_unknown_identifier_returns_none(manager, fake_backend, seeded):
    assert await manager.get_contact_details("does-not-exist") is None
    assert fake_backend.calls_to("get_contacts_by_name") == []


# =============================================================================
# Writes
# =============================================================================

@pytest.mark.asyncio
async def test_create_passes_only_supplied_fields(manager, fake_backend):
    assert await manager.create_contact({"firstName": "Alice", "lastName": None, "phoneNumbers": ["1"]})

    (_, payload), = fake_backend.calls_to("add_new_contact")
    assert payload == {"firstName": "Alice", "phoneNumbers": ["1"]}


@pytest.mark.asyncio
async def test_create_failure_returns_false(manager, fake_backend):
    fake_backend.write_result = False
    assert await manager.create_contact({"firstName": "Alice"}) is False


@pytest.mark.asyncio
async def test_find_created_identifier_matches_names(manager, fake_backend):
    fake_backend.seed(firstName="Alice", lastName="Other")
    wanted = fake_backend.seed(firstName="Alice", lastName="Liddell")

    assert await manager.find_created_identifier("Alice", "Liddell") == wanted
    assert await manager.find_created_identifier("Nobody") is None


@pytest.mark.asyncio
async def test_update_preserves_omitted_fields(manager, fake_backend, seeded):
    assert await manager.update_contact(seeded["jane"], {"lastName": "Smith"})

    (_, payload), = fake_backend.calls_to("update_contact")
    assert payload["identifier"] == seeded["jane"]
    assert payload["lastName"] == "Smith"
    assert payload["firstName"] == "Jane"
    assert payload["nickname"] == "JD"
    assert payload["jobTitle"] == "Engineer"
    assert payload["organizationName"] == "Acme"
    # Sequences the caller did not send are left unspecified
    assert payload["phoneNumbers"] is None
    assert payload["emailAddresses"] is None
    assert payload["urlAddresses"] is None


@pytest.mark.asyncio
async def test_update_replaces_sequences_wholesale(manager, fake_backend, seeded):
    await manager.update_contact(seeded["jane"], {"phoneNumbers": ["+15550000000"]})

    assert fake_backend.records[seeded["jane"]]["phoneNumbers"] == ["+15550000000"]
    assert fake_backend.records[seeded["jane"]]["emailAddresses"] == ["Jane.Doe@Example.com"]


@pytest.mark.asyncio
async def test_update_unknown_identifier_raises(manager, fake_backend):
    with pytest.raises(NotFoundError):
        await manager.update_contact("missing", {"firstName": "X"})
    assert fake_backend.calls_to("update_contact") == []


@pytest.mark.asyncio
async def test_delete_delegates_without_precheck(manager, fake_backend, seeded):
    assert await manager.delete_contact(seeded["jane"]) is True
    assert await manager.delete_contact("missing") is False
    assert fake_backend.calls_to("get_all_contacts") == []


# =============================================================================
# Gate and loader integration
# =============================================================================

@pytest.mark.asyncio
async def test_operations_check_access(make_backend):
    backend = make_backend(status=STATUS_DENIED)
    manager = ContactsManager(BackendLoader(lambda: backend))

    with pytest.raises(AccessDeniedError):
        await manager.get_all_contacts()
    assert backend.calls_to("get_all_contacts") == []


@pytest.mark.asyncio
async def test_auth_status_does_not_prompt(make_backend):
    backend = make_backend(status="not_determined")
    manager = ContactsManager(BackendLoader(lambda: backend))

    assert await manager.get_auth_status() == "not_determined"
    assert backend.access_requests == 0


@pytest.mark.asyncio
async def test_backend_load_failure_is_an_operation_error():
    def broken():
        raise ImportError("dlopen failed: incompatible architecture")

    manager = ContactsManager(BackendLoader(broken))

    with pytest.raises(BackendUnavailableError, match="incompatible architecture"):
        await manager.search_contacts("Jane")
