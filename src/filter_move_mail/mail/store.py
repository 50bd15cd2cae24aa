"""Collaborator interfaces the rule engine talks to."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from filter_move_mail.mail.messages import (
    Destination,
    FolderRef,
    MessagePage,
    MessageSummary,
    MimeNode,
)

NewMailListener = Callable[[FolderRef, list[MessageSummary]], Awaitable[None]]


class MailStore(Protocol):
    """Paged message listing, content retrieval and batch moves."""

    async def list(self, folder: FolderRef) -> MessagePage: ...

    async def continue_list(self, cursor: Any) -> MessagePage: ...

    async def get_full_content(self, message_id: str) -> MimeNode: ...

    async def move(self, message_ids: list[str], destination: Destination) -> None:
        """Move all messages at once; raises MoveError on rejection."""
        ...


class AccountDirectory(Protocol):
    """Account and folder enumeration."""

    async def inbox_folders(
        self, all_accounts: bool, account_ids: set[str]
    ) -> list[FolderRef]: ...

    async def own_addresses(self) -> set[str]: ...


class NewMailSource(Protocol):
    """Event source notifying listeners of newly received messages."""

    def add_listener(self, listener: NewMailListener) -> None: ...

    def remove_listener(self, listener: NewMailListener) -> None: ...


__all__ = [
    "AccountDirectory",
    "MailStore",
    "NewMailListener",
    "NewMailSource",
]
