"""Mail store and address book interface layer."""

from filter_move_mail.mail.addressbook import AddressBook, Book, Contact, YamlAddressBook
from filter_move_mail.mail.messages import (
    Destination,
    FolderRef,
    MessagePage,
    MessageSummary,
    MimeNode,
)
from filter_move_mail.mail.store import AccountDirectory, MailStore, NewMailSource

__all__ = [
    "AccountDirectory",
    "AddressBook",
    "Book",
    "Contact",
    "Destination",
    "FolderRef",
    "MailStore",
    "MessagePage",
    "MessageSummary",
    "MimeNode",
    "NewMailSource",
    "YamlAddressBook",
]
