"""Condition definitions and evaluation against a single message."""

import logging
import re
from collections.abc import Callable, Iterable
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from filter_move_mail.errors import AddressBookError

if TYPE_CHECKING:
    from filter_move_mail.mail.addressbook import AddressBook
    from filter_move_mail.mail.messages import MessageSummary

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")

# Rule data is stored with snake_case keys; exported configurations use camelCase.
RULE_MODEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ConditionField(str, Enum):
    """Message fields a condition can test."""

    FROM = "from"
    TO = "to"
    CC = "cc"
    BCC = "bcc"
    SUBJECT = "subject"
    BODY = "body"

    @property
    def is_address(self) -> bool:
        """True for fields that carry email addresses."""
        return self in ADDRESS_FIELDS


class ConditionOperator(str, Enum):
    """Comparison operators."""

    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS = "is"
    IS_NOT = "is_not"
    IN_ADDRESSBOOK = "in_addressbook"
    NOT_IN_ADDRESSBOOK = "not_in_addressbook"

    @property
    def uses_address_book(self) -> bool:
        """True for operators that take an address book instead of a value."""
        return self in ADDRESS_BOOK_OPERATORS


ADDRESS_FIELDS = frozenset(
    {ConditionField.FROM, ConditionField.TO, ConditionField.CC, ConditionField.BCC}
)
ADDRESS_BOOK_OPERATORS = frozenset(
    {ConditionOperator.IN_ADDRESSBOOK, ConditionOperator.NOT_IN_ADDRESSBOOK}
)

# BODY is absent: its text is fetched lazily by the caller.
FIELD_EXTRACTORS: dict[ConditionField, Callable[["MessageSummary"], str]] = {
    ConditionField.FROM: lambda msg: msg.author or "",
    ConditionField.TO: lambda msg: ", ".join(msg.recipients or []),
    ConditionField.CC: lambda msg: ", ".join(msg.cc_list or []),
    ConditionField.BCC: lambda msg: ", ".join(msg.bcc_list or []),
    ConditionField.SUBJECT: lambda msg: msg.subject or "",
}


class Condition(BaseModel):
    """A single field/operator/value test."""

    model_config = RULE_MODEL_CONFIG

    field: ConditionField
    operator: ConditionOperator = ConditionOperator.CONTAINS
    value: str = Field(default="", description="Value to compare against")
    address_book_id: str | None = Field(
        default=None, description="Restrict address book lookups to this book (None = all)"
    )

    @property
    def is_active(self) -> bool:
        """Whether the condition takes part in matching."""
        return self.operator.uses_address_book or bool(self.value.strip())


def extract_addresses(text: str) -> list[str]:
    """Return every ``local@domain`` token in ``text``, lower-cased."""
    return [m.lower() for m in EMAIL_PATTERN.findall(text or "")]


def field_text(field: ConditionField, message: "MessageSummary", body_text: str | None) -> str:
    """Render the text of ``field`` for ``message``."""
    if field is ConditionField.BODY:
        return body_text or ""
    return FIELD_EXTRACTORS[field](message)


async def is_in_address_book(
    address: str,
    address_book: "AddressBook",
    book_id: str | None = None,
) -> bool:
    """
    Check whether an address belongs to a contact.

    The collaborator's search is a partial match, so every hit is compared
    exactly (case-insensitively) against the contact's primary and secondary
    addresses. Lookup failures count as "not known".

    Args:
        address: Address to look up.
        address_book: Address book collaborator.
        book_id: Restrict the lookup to this book, or None for every book.

    Returns:
        True if an exact match was found.
    """
    wanted = address.lower()
    try:
        books = await address_book.list_books()
        if book_id:
            books = [b for b in books if b.id == book_id]

        for book in books:
            for contact in await address_book.search(book.id, address):
                for candidate in (contact.primary_email, contact.second_email):
                    if candidate and candidate.lower() == wanted:
                        return True
    except AddressBookError as e:
        logger.error("Error checking address book for %s: %s", address, e)
        return False
    return False


async def evaluate_condition(
    condition: Condition,
    message: "MessageSummary",
    body_text: str | None = None,
    address_book: "AddressBook | None" = None,
    *,
    excluded_addresses: Iterable[str] = (),
) -> bool:
    """
    Evaluate one condition against one message.

    Args:
        condition: The condition to evaluate.
        message: Message headers.
        body_text: Plain-text body, only needed for BODY conditions.
        address_book: Collaborator used by the address book operators.
        excluded_addresses: Lower-cased addresses ignored by the address book
            operators (the user's own addresses).

    Returns:
        True if the condition holds. Unknown fields or operators yield False.
    """
    field = condition.field
    if field is not ConditionField.BODY and field not in FIELD_EXTRACTORS:
        logger.warning("Unknown field: %s", field)
        return False

    text = field_text(field, message, body_text)
    text_lower = text.lower()
    value_lower = (condition.value or "").lower()

    match condition.operator:
        case ConditionOperator.CONTAINS:
            return value_lower in text_lower

        case ConditionOperator.NOT_CONTAINS:
            return value_lower not in text_lower

        case ConditionOperator.IS:
            if field.is_address:
                return value_lower in extract_addresses(text)
            return text_lower == value_lower

        case ConditionOperator.IS_NOT:
            if field.is_address:
                return value_lower not in extract_addresses(text)
            return text_lower != value_lower

        case ConditionOperator.IN_ADDRESSBOOK | ConditionOperator.NOT_IN_ADDRESSBOOK:
            excluded = set(excluded_addresses)
            addresses = [a for a in extract_addresses(text) if a not in excluded]
            if address_book is None:
                logger.warning("No address book available for %s", condition.operator.value)
                return False

            wants_known = condition.operator is ConditionOperator.IN_ADDRESSBOOK
            for address in addresses:
                if await is_in_address_book(address, address_book, condition.address_book_id):
                    return wants_known
            # An empty address list never satisfies not_in_addressbook.
            return not wants_known and len(addresses) > 0

        case _:
            logger.warning("Unknown operator: %s", condition.operator)
            return False
