"""Address book access: the collaborator interface and a YAML-backed book store."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import yaml

from filter_move_mail.errors import AddressBookError


@dataclass(frozen=True)
class Book:
    """An address book."""

    id: str
    name: str


@dataclass
class Contact:
    """A contact card; addresses live under ``PrimaryEmail`` / ``SecondEmail``."""

    properties: dict[str, str] = field(default_factory=dict)

    @property
    def primary_email(self) -> str | None:
        return self.properties.get("PrimaryEmail")

    @property
    def second_email(self) -> str | None:
        return self.properties.get("SecondEmail")


class AddressBook(Protocol):
    """Address book collaborator. ``search`` is fuzzy, never exact."""

    async def list_books(self) -> list[Book]: ...

    async def search(self, book_id: str, query: str) -> list[Contact]: ...


class YamlAddressBook:
    """
    Address books stored in a YAML file.

    Expected layout::

        books:
          - id: personal
            name: Personal
            contacts:
              - DisplayName: John Doe
                PrimaryEmail: john@example.com
                SecondEmail: jd@example.org
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._books: list[Book] | None = None
        self._contacts: dict[str, list[Contact]] = {}

    def _load(self) -> None:
        if self._books is not None:
            return

        if not self.path.exists():
            self._books = []
            return

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise AddressBookError(f"Cannot read address books from {self.path}: {e}") from e

        books = []
        for entry in data.get("books", []):
            book = Book(id=str(entry["id"]), name=str(entry.get("name", entry["id"])))
            books.append(book)
            self._contacts[book.id] = [
                Contact(properties={k: str(v) for k, v in (c or {}).items() if v is not None})
                for c in entry.get("contacts", [])
            ]
        self._books = books

    async def list_books(self) -> list[Book]:
        self._load()
        return list(self._books or [])

    async def search(self, book_id: str, query: str) -> list[Contact]:
        """Return contacts with any property containing ``query`` (case-insensitive)."""
        self._load()
        if book_id not in self._contacts:
            raise AddressBookError(f"Unknown address book: {book_id}")

        needle = query.lower()
        return [
            contact
            for contact in self._contacts[book_id]
            if any(needle in value.lower() for value in contact.properties.values())
        ]
