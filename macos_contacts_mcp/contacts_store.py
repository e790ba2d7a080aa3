"""
Structured access to the macOS address book.

ContactsBackend is the narrow capability the rest of the server talks to.
PyObjCContactsBackend implements it on the Contacts framework
(CNContactStore). Records cross this boundary as plain dicts keyed the
way they are returned to MCP clients (identifier, firstName, ...).
"""

import logging
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Authorization status strings
STATUS_NOT_DETERMINED = "not_determined"
STATUS_AUTHORIZED = "authorized"
STATUS_DENIED = "denied"
STATUS_RESTRICTED = "restricted"
STATUS_LIMITED = "limited"
STATUS_UNKNOWN = "unknown"

# CNAuthorizationStatusLimited only exists in macOS 15 SDKs
CN_AUTHORIZATION_STATUS_LIMITED = 4

# Extra properties, in the order they are requested from the store
ALL_EXTRA_PROPERTIES = [
    "jobTitle",
    "departmentName",
    "organizationName",
    "middleName",
    "note",
    "urlAddresses",
    "socialProfiles",
    "instantMessageAddresses",
]

# Property name -> Contacts framework key constant
_PROPERTY_KEYS = {
    "identifier": "CNContactIdentifierKey",
    "firstName": "CNContactGivenNameKey",
    "lastName": "CNContactFamilyNameKey",
    "nickname": "CNContactNicknameKey",
    "birthday": "CNContactBirthdayKey",
    "phoneNumbers": "CNContactPhoneNumbersKey",
    "emailAddresses": "CNContactEmailAddressesKey",
    "postalAddresses": "CNContactPostalAddressesKey",
    "jobTitle": "CNContactJobTitleKey",
    "departmentName": "CNContactDepartmentNameKey",
    "organizationName": "CNContactOrganizationNameKey",
    "middleName": "CNContactMiddleNameKey",
    "note": "CNContactNoteKey",
    "urlAddresses": "CNContactUrlAddressesKey",
    "socialProfiles": "CNContactSocialProfilesKey",
    "instantMessageAddresses": "CNContactInstantMessageAddressesKey",
}

BASIC_PROPERTIES = [
    "identifier",
    "firstName",
    "lastName",
    "nickname",
    "birthday",
    "phoneNumbers",
    "emailAddresses",
    "postalAddresses",
]

# Writable scalar field -> CNMutableContact setter
_SCALAR_SETTERS = {
    "firstName": "setGivenName_",
    "lastName": "setFamilyName_",
    "nickname": "setNickname_",
    "middleName": "setMiddleName_",
    "jobTitle": "setJobTitle_",
    "departmentName": "setDepartmentName_",
    "organizationName": "setOrganizationName_",
}

WRITABLE_PROPERTIES = list(_SCALAR_SETTERS) + [
    "birthday",
    "phoneNumbers",
    "emailAddresses",
    "urlAddresses",
]

BIRTHDAY_PATTERN = re.compile(r'^(?:(\d{4})|-)-(\d{2})-(\d{2})$')

# NSDateComponentUndefined
NS_UNDEFINED_DATE_COMPONENT = 9223372036854775807


class ContactsBackend(ABC):
    """Capability interface over the structured address book."""

    @abstractmethod
    def get_auth_status(self) -> str:
        """Return the current authorization status string."""

    @abstractmethod
    def request_access(self) -> str:
        """Prompt for access (blocking) and return the resulting status."""

    @abstractmethod
    def get_all_contacts(self, extra_properties: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Return every contact, with extra_properties added when given."""

    @abstractmethod
    def get_contacts_by_name(
        self,
        name: str,
        extra_properties: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """Return contacts matched by the store's native name search."""

    @abstractmethod
    def add_new_contact(self, fields: Dict[str, Any]) -> bool:
        """Create a contact. Returns True on success."""

    @abstractmethod
    def update_contact(self, fields: Dict[str, Any]) -> bool:
        """Update the contact named by fields["identifier"]. None values are left untouched."""

    @abstractmethod
    def delete_contact(self, identifier: str) -> bool:
        """Delete a contact. Returns False if it does not exist."""


def parse_birthday(value: str) -> Optional[tuple]:
    """
    Parse a birthday string into (year, month, day).

    Accepts YYYY-MM-DD, or --MM-DD for birthdays without a year
    (year is None). Returns None for an empty string.

    Raises:
        ValueError: If the string is not in either format
    """
    if not value:
        return None

    match = BIRTHDAY_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid birthday '{value}': expected YYYY-MM-DD or --MM-DD")

    year, month, day = match.groups()
    return (int(year) if year else None, int(month), int(day))


def format_birthday(year: Optional[int], month: int, day: int) -> str:
    """Format birthday components as YYYY-MM-DD, or --MM-DD without a year."""
    if year is None:
        return f"--{month:02d}-{day:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"


class PyObjCContactsBackend(ContactsBackend):
    """
    ContactsBackend on the macOS Contacts framework via PyObjC.

    Constructing this imports the framework, so it fails with ImportError
    where pyobjc-framework-Contacts is missing or not loadable.

    Args:
        fetch_notes: Request CNContactNoteKey for extra properties. Reading
            notes needs an entitlement on macOS 13+, so it can be disabled.
    """

    def __init__(self, fetch_notes: bool = True):
        import Contacts

        self._cn = Contacts
        self.fetch_notes = fetch_notes
        self.store = Contacts.CNContactStore.alloc().init()
        logger.debug("Initialized CNContactStore")

    # -------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------

    def _status_string(self, status: int) -> str:
        cn = self._cn
        status_map = {
            cn.CNAuthorizationStatusNotDetermined: STATUS_NOT_DETERMINED,
            cn.CNAuthorizationStatusRestricted: STATUS_RESTRICTED,
            cn.CNAuthorizationStatusDenied: STATUS_DENIED,
            cn.CNAuthorizationStatusAuthorized: STATUS_AUTHORIZED,
            getattr(cn, "CNAuthorizationStatusLimited", CN_AUTHORIZATION_STATUS_LIMITED): STATUS_LIMITED,
        }
        return status_map.get(status, STATUS_UNKNOWN)

    def get_auth_status(self) -> str:
        status = self._cn.CNContactStore.authorizationStatusForEntityType_(
            self._cn.CNEntityTypeContacts
        )
        return self._status_string(status)

    def request_access(self) -> str:
        """
        Request Contacts access from macOS.

        This shows the system permission dialog the first time and blocks
        until the user responds (or macOS gives up).

        Returns:
            Authorization status after the prompt
        """
        done = threading.Event()

        def completion(granted, error):
            if error:
                logger.warning(f"Contacts access request error: {error}")
            logger.info(f"Contacts access request answered, granted={bool(granted)}")
            done.set()

        self.store.requestAccessForEntityType_completionHandler_(
            self._cn.CNEntityTypeContacts,
            completion
        )
        done.wait()

        return self.get_auth_status()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def _keys_for(self, properties: List[str]) -> list:
        return [getattr(self._cn, _PROPERTY_KEYS[prop]) for prop in properties]

    def _fetch_properties(self, extra_properties: Optional[List[str]]) -> List[str]:
        properties = list(BASIC_PROPERTIES)
        for prop in extra_properties or []:
            if prop not in _PROPERTY_KEYS:
                raise ValueError(f"Unknown contact property: {prop}")
            if prop == "note" and not self.fetch_notes:
                continue
            if prop not in properties:
                properties.append(prop)
        return properties

    @staticmethod
    def _labeled_strings(labeled_values) -> List[str]:
        return [str(lv.value()) for lv in labeled_values or []]

    @staticmethod
    def _format_postal_address(address) -> str:
        parts = [
            address.street(),
            address.city(),
            address.state(),
            address.postalCode(),
            address.country(),
        ]
        return ", ".join(str(p).replace("\n", ", ") for p in parts if p)

    @staticmethod
    def _format_components(components) -> str:
        if components is None:
            return ""
        month = components.month()
        day = components.day()
        if month == NS_UNDEFINED_DATE_COMPONENT or day == NS_UNDEFINED_DATE_COMPONENT:
            return ""
        year = components.year()
        if year == NS_UNDEFINED_DATE_COMPONENT:
            year = None
        return format_birthday(year, month, day)

    def _contact_to_dict(self, contact, extra_properties: Optional[List[str]]) -> Dict[str, Any]:
        record = {
            "identifier": str(contact.identifier()),
            "firstName": str(contact.givenName() or ""),
            "lastName": str(contact.familyName() or ""),
            "nickname": str(contact.nickname() or ""),
            "birthday": self._format_components(contact.birthday()),
            "phoneNumbers": [
                str(lv.value().stringValue()) for lv in contact.phoneNumbers() or []
            ],
            "emailAddresses": self._labeled_strings(contact.emailAddresses()),
            "postalAddresses": [
                self._format_postal_address(lv.value())
                for lv in contact.postalAddresses() or []
            ],
        }

        if not extra_properties:
            return record

        for prop in extra_properties:
            if prop == "note":
                record["note"] = str(contact.note() or "") if self.fetch_notes else ""
            elif prop == "urlAddresses":
                record["urlAddresses"] = self._labeled_strings(contact.urlAddresses())
            elif prop == "socialProfiles":
                record["socialProfiles"] = [
                    {
                        "label": str(lv.value().service() or ""),
                        "value": str(lv.value().username() or lv.value().urlString() or ""),
                    }
                    for lv in contact.socialProfiles() or []
                ]
            elif prop == "instantMessageAddresses":
                record["instantMessageAddresses"] = [
                    {
                        "label": str(lv.value().service() or ""),
                        "value": str(lv.value().username() or ""),
                    }
                    for lv in contact.instantMessageAddresses() or []
                ]
            else:
                getter = {
                    "jobTitle": contact.jobTitle,
                    "departmentName": contact.departmentName,
                    "organizationName": contact.organizationName,
                    "middleName": contact.middleName,
                }[prop]
                record[prop] = str(getter() or "")

        return record

    def get_all_contacts(self, extra_properties: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        keys = self._keys_for(self._fetch_properties(extra_properties))
        request = self._cn.CNContactFetchRequest.alloc().initWithKeysToFetch_(keys)

        contacts = []

        def contact_handler(contact, stop):
            contacts.append(self._contact_to_dict(contact, extra_properties))

        success, error = self.store.enumerateContactsWithFetchRequest_error_usingBlock_(
            request,
            None,
            contact_handler
        )
        if not success:
            raise RuntimeError(f"Failed to fetch contacts: {error}")

        logger.debug(f"Fetched {len(contacts)} contacts")
        return contacts

    def get_contacts_by_name(
        self,
        name: str,
        extra_properties: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        keys = self._keys_for(self._fetch_properties(extra_properties))
        predicate = self._cn.CNContact.predicateForContactsMatchingName_(name)

        matches, error = self.store.unifiedContactsMatchingPredicate_keysToFetch_error_(
            predicate,
            keys,
            None
        )
        if matches is None:
            raise RuntimeError(f"Failed to search contacts: {error}")

        return [self._contact_to_dict(c, extra_properties) for c in matches]

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    def _birthday_components(self, value: str):
        from Foundation import NSDateComponents

        parsed = parse_birthday(value)
        if parsed is None:
            return None

        year, month, day = parsed
        components = NSDateComponents.alloc().init()
        if year is not None:
            components.setYear_(year)
        components.setMonth_(month)
        components.setDay_(day)
        return components

    def _labeled(self, label, values: List[Any]) -> list:
        return [self._cn.CNLabeledValue.labeledValueWithLabel_value_(label, v) for v in values]

    def _apply_fields(self, contact, fields: Dict[str, Any]) -> None:
        """Copy non-None fields onto a CNMutableContact."""
        cn = self._cn

        for field_name, setter in _SCALAR_SETTERS.items():
            value = fields.get(field_name)
            if value is not None:
                getattr(contact, setter)(value)

        if fields.get("birthday") is not None:
            contact.setBirthday_(self._birthday_components(fields["birthday"]))

        if fields.get("phoneNumbers") is not None:
            contact.setPhoneNumbers_(self._labeled(
                cn.CNLabelPhoneNumberMobile,
                [cn.CNPhoneNumber.phoneNumberWithStringValue_(p) for p in fields["phoneNumbers"]]
            ))

        if fields.get("emailAddresses") is not None:
            contact.setEmailAddresses_(self._labeled(cn.CNLabelHome, fields["emailAddresses"]))

        if fields.get("urlAddresses") is not None:
            contact.setUrlAddresses_(self._labeled(cn.CNLabelURLAddressHomePage, fields["urlAddresses"]))

    def _execute(self, request, action: str) -> bool:
        success, error = self.store.executeSaveRequest_error_(request, None)
        if not success:
            logger.error(f"Failed to {action} contact: {error}")
            return False
        return True

    def _mutable_contact(self, identifier: str, properties: List[str]):
        contact, error = self.store.unifiedContactWithIdentifier_keysToFetch_error_(
            identifier,
            self._keys_for(properties),
            None
        )
        if contact is None:
            logger.info(f"Contact {identifier} not found: {error}")
            return None
        return contact.mutableCopy()

    def add_new_contact(self, fields: Dict[str, Any]) -> bool:
        contact = self._cn.CNMutableContact.alloc().init()
        self._apply_fields(contact, fields)

        request = self._cn.CNSaveRequest.alloc().init()
        request.addContact_toContainerWithIdentifier_(contact, None)
        return self._execute(request, "add")

    def update_contact(self, fields: Dict[str, Any]) -> bool:
        contact = self._mutable_contact(fields["identifier"], ["identifier"] + WRITABLE_PROPERTIES)
        if contact is None:
            return False

        self._apply_fields(contact, fields)

        request = self._cn.CNSaveRequest.alloc().init()
        request.updateContact_(contact)
        return self._execute(request, "update")

    def delete_contact(self, identifier: str) -> bool:
        contact = self._mutable_contact(identifier, ["identifier"])
        if contact is None:
            return False

        request = self._cn.CNSaveRequest.alloc().init()
        request.deleteContact_(contact)
        return self._execute(request, "delete")
