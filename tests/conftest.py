"""Pytest fixtures for filter-move-mail tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from filter_move_mail.errors import AddressBookError, MailStoreError, MoveError
from filter_move_mail.logging import reset_logging, setup_logging
from filter_move_mail.mail.addressbook import Book, Contact
from filter_move_mail.mail.messages import (
    Destination,
    FolderRef,
    MessagePage,
    MessageSummary,
    MimeNode,
)


class FakeMailStore:
    """In-memory mail store recording every call."""

    def __init__(
        self,
        messages: list[MessageSummary] | None = None,
        page_size: int = 100,
        bodies: dict[str, MimeNode] | None = None,
    ) -> None:
        self.messages = messages or []
        self.page_size = page_size
        self.bodies = bodies or {}
        self.fail_destinations: set[str] = set()
        self.fail_folders: set[str] = set()
        self.list_calls: list[FolderRef] = []
        self.continue_calls: list[int] = []
        self.content_calls: list[str] = []
        self.move_calls: list[tuple[list[str], Destination]] = []

    def _page(self, offset: int) -> MessagePage:
        chunk = self.messages[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        cursor = next_offset if next_offset < len(self.messages) else None
        return MessagePage(messages=list(chunk), cursor=cursor)

    async def list(self, folder: FolderRef) -> MessagePage:
        self.list_calls.append(folder)
        if folder.key in self.fail_folders:
            raise MailStoreError(f"Cannot list {folder.key}")
        return self._page(0)

    async def continue_list(self, cursor: int) -> MessagePage:
        self.continue_calls.append(cursor)
        return self._page(cursor)

    async def get_full_content(self, message_id: str) -> MimeNode:
        self.content_calls.append(message_id)
        if message_id not in self.bodies:
            raise MailStoreError(f"No content for {message_id}")
        return self.bodies[message_id]

    async def move(self, message_ids: list[str], destination: Destination) -> None:
        self.move_calls.append((list(message_ids), destination))
        if destination.key in self.fail_destinations:
            raise MoveError("rejected", destination, message_ids)


class FakeAddressBook:
    """Address book whose search is a fuzzy substring match, like the real one."""

    def __init__(self, books: dict[Book, list[str]] | None = None, fail: bool = False) -> None:
        self.books = books or {}
        self.fail = fail
        self.searches: list[tuple[str, str]] = []

    async def list_books(self) -> list[Book]:
        if self.fail:
            raise AddressBookError("address book unavailable")
        return list(self.books)

    async def search(self, book_id: str, query: str) -> list[Contact]:
        self.searches.append((book_id, query))
        for book, addresses in self.books.items():
            if book.id == book_id:
                return [
                    Contact(properties={"PrimaryEmail": addr})
                    for addr in addresses
                    if query.lower() in addr.lower()
                ]
        return []


class FakeDirectory:
    """Account directory with fixed inboxes and identities."""

    def __init__(self, account_ids: list[str], own: set[str] | None = None) -> None:
        self.account_ids = account_ids
        self.own = own or set()

    async def inbox_folders(self, all_accounts: bool, account_ids: set[str]) -> list[FolderRef]:
        return [
            FolderRef(a, "/INBOX", account_name=a)
            for a in self.account_ids
            if all_accounts or a in account_ids
        ]

    async def own_addresses(self) -> set[str]:
        return set(self.own)


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path: Path):
    """Write log files under the test's temporary directory."""
    setup_logging(log_dir=tmp_path / "logs")
    yield
    reset_logging()


@pytest.fixture
def inbox() -> FolderRef:
    return FolderRef("acct1", "/INBOX", account_name="Work")


@pytest.fixture
def sample_message() -> MessageSummary:
    """Create a sample message for testing."""
    return MessageSummary(
        id="m1",
        author="John Doe <john@example.com>",
        recipients=["Me <me@example.org>", "team@example.org"],
        cc_list=["Boss <boss@example.org>"],
        bcc_list=[],
        subject="Invoice for March",
    )


@pytest.fixture
def newsletter_message() -> MessageSummary:
    """Create a newsletter-like message for testing."""
    return MessageSummary(
        id="m2",
        author="News <newsletter@company.com>",
        recipients=["me@example.org"],
        subject="Weekly Newsletter - December Edition",
    )


@pytest.fixture
def address_book() -> FakeAddressBook:
    return FakeAddressBook(
        {
            Book("personal", "Personal"): ["john@example.com", "johnny@example.com.au"],
            Book("work", "Work"): ["boss@example.org"],
        }
    )
