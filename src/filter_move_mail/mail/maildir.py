"""Local Maildir mail store.

Each directory below the root is one account, itself a Maildir whose top level
is the inbox (``/INBOX``). Sub-folders use the Maildir++ layout, so folder
``Archive.2024`` is addressed as ``/Archive/2024``.
"""

from __future__ import annotations

import email.policy
import logging
import mailbox
import os
import uuid
from collections.abc import Iterable, Mapping
from email.header import decode_header, make_header
from email.message import EmailMessage, Message
from email.parser import BytesParser
from email.utils import formataddr, getaddresses
from pathlib import Path
from typing import Any

from filter_move_mail.errors import FilterMoveMailError, MailStoreError, MoveError
from filter_move_mail.mail.messages import (
    Destination,
    FolderRef,
    MessagePage,
    MessageSummary,
    MimeNode,
)
from filter_move_mail.mail.store import NewMailListener

logger = logging.getLogger(__name__)

INBOX_PATH = "/INBOX"
MAILDIR_SUBDIRS = ("cur", "new", "tmp")


def _decode(value: str | None) -> str:
    """Decode RFC 2047 encoded words in a header value."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (UnicodeError, LookupError):
        return value


def _address_list(msg: Message, header: str) -> list[str]:
    values = [_decode(v) for v in msg.get_all(header, [])]
    return [formataddr((name, addr)) for name, addr in getaddresses(values) if addr]


def _to_mime_node(part: EmailMessage) -> MimeNode:
    content_type = part.get_content_type()
    if part.is_multipart():
        return MimeNode(
            content_type=content_type,
            parts=[_to_mime_node(p) for p in part.iter_parts()],
        )

    body = None
    if part.get_content_maintype() == "text":
        try:
            body = part.get_content()
        except (LookupError, UnicodeError):
            payload = part.get_payload(decode=True) or b""
            body = payload.decode("utf-8", errors="replace")
    return MimeNode(content_type=content_type, body=body)


def _is_maildir(path: Path) -> bool:
    return all((path / sub).is_dir() for sub in MAILDIR_SUBDIRS)


class MaildirStore:
    """Mail store and account directory over a tree of Maildirs."""

    def __init__(
        self,
        root: Path,
        *,
        page_size: int = 100,
        identities: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            root: Directory holding one Maildir per account.
            page_size: Number of messages returned per listing page.
            identities: Own addresses per account id.
        """
        self.root = root
        self.page_size = page_size
        self.identities = {k: list(v) for k, v in (identities or {}).items()}
        self._cursors: dict[str, tuple[FolderRef, list[str], int]] = {}

    # === Accounts and folders ===

    def account_ids(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir() and _is_maildir(p))

    def _account(self, account_id: str) -> mailbox.Maildir:
        path = self.root / account_id
        if not _is_maildir(path):
            raise MailStoreError(f"Unknown account: {account_id}")
        return mailbox.Maildir(path, factory=None, create=False)

    def open_folder(self, account_id: str, path: str, *, create: bool = False) -> mailbox.Maildir:
        inbox = self._account(account_id)
        if path in ("", "/", INBOX_PATH):
            return inbox

        name = path.strip("/").replace("/", ".")
        try:
            return inbox.get_folder(name)
        except mailbox.NoSuchMailboxError:
            if not create:
                raise MailStoreError(f"Unknown folder {path} in account {account_id}") from None
            logger.info("Creating folder %s in account %s", path, account_id)
            return inbox.add_folder(name)

    def list_folders(self, account_id: str) -> list[FolderRef]:
        """All folders of an account, inbox first."""
        inbox = self._account(account_id)
        folders = [FolderRef(account_id, INBOX_PATH, account_name=account_id)]
        for name in sorted(inbox.list_folders()):
            folders.append(
                FolderRef(account_id, "/" + name.replace(".", "/"), account_name=account_id)
            )
        return folders

    async def inbox_folders(
        self, all_accounts: bool, account_ids: set[str]
    ) -> list[FolderRef]:
        """Inboxes of all accounts, or of the given ones."""
        return [
            FolderRef(
                account_id,
                INBOX_PATH,
                account_name=account_id,
                display_label=f"Inbox on {account_id}",
            )
            for account_id in self.account_ids()
            if all_accounts or account_id in account_ids
        ]

    async def own_addresses(self) -> set[str]:
        """Lower-cased identity addresses across all accounts."""
        return {addr.lower() for addrs in self.identities.values() for addr in addrs if addr}

    # === Listing ===

    def _message_id(self, folder: FolderRef, key: str) -> str:
        return f"{folder.account_id}:{folder.path}:{key}"

    def _parse_message_id(self, message_id: str) -> tuple[str, str, str]:
        try:
            account_id, rest = message_id.split(":", 1)
            path, key = rest.rsplit(":", 1)
        except ValueError:
            raise MailStoreError(f"Malformed message id: {message_id}") from None
        return account_id, path, key

    def summarize(self, folder: FolderRef, key: str, msg: Message) -> MessageSummary:
        return MessageSummary(
            id=self._message_id(folder, key),
            author=_decode(msg.get("From")),
            recipients=_address_list(msg, "To"),
            cc_list=_address_list(msg, "Cc"),
            bcc_list=_address_list(msg, "Bcc"),
            subject=_decode(msg.get("Subject")),
        )

    def _page(self, folder: FolderRef, keys: list[str], offset: int) -> MessagePage:
        box = self.open_folder(folder.account_id, folder.path)
        chunk = keys[offset : offset + self.page_size]

        messages = []
        for key in chunk:
            try:
                msg = box.get_message(key)
            except KeyError:
                # Removed since the listing started
                continue
            messages.append(self.summarize(folder, key, msg))

        cursor = None
        next_offset = offset + len(chunk)
        if next_offset < len(keys):
            cursor = uuid.uuid4().hex
            self._cursors[cursor] = (folder, keys, next_offset)
        return MessagePage(messages=messages, cursor=cursor)

    async def list(self, folder: FolderRef) -> MessagePage:
        """First page of a folder listing."""
        box = self.open_folder(folder.account_id, folder.path)
        return self._page(folder, sorted(box.keys()), 0)

    async def continue_list(self, cursor: Any) -> MessagePage:
        """Next page of a listing started with ``list``."""
        try:
            folder, keys, offset = self._cursors.pop(cursor)
        except KeyError:
            raise MailStoreError(f"Unknown or expired listing cursor: {cursor}") from None
        return self._page(folder, keys, offset)

    # === Content ===

    async def get_full_content(self, message_id: str) -> MimeNode:
        """Parse a message into a MIME tree."""
        account_id, path, key = self._parse_message_id(message_id)
        box = self.open_folder(account_id, path)
        try:
            raw = box.get_bytes(key)
        except KeyError:
            raise MailStoreError(f"Message not found: {message_id}") from None
        msg = BytesParser(policy=email.policy.default).parsebytes(raw)
        return _to_mime_node(msg)

    # === Moving ===

    async def move(self, message_ids: list[str], destination: Destination) -> None:
        """
        Move messages to a destination folder, creating the folder if needed.

        Every message is resolved before any is moved, so an unknown id rejects
        the whole batch.

        Raises:
            MoveError: If the destination account is unknown, a message cannot
                be found, or the filesystem rejects the move.
        """
        try:
            target = self.open_folder(destination.account_id, destination.path, create=True)
        except MailStoreError as e:
            raise MoveError(str(e), destination, message_ids) from e

        resolved: list[tuple[mailbox.Maildir, str]] = []
        for message_id in message_ids:
            try:
                account_id, path, key = self._parse_message_id(message_id)
                box = self.open_folder(account_id, path)
            except MailStoreError as e:
                raise MoveError(str(e), destination, message_ids) from e
            if key not in box:
                raise MoveError(f"Message not found: {message_id}", destination, message_ids)
            resolved.append((box, key))

        # Copy everything first; sources are only removed once every copy exists.
        added: list[str] = []
        try:
            for box, key in resolved:
                added.append(target.add(box.get_message(key)))
        except OSError as e:
            for new_key in added:
                target.discard(new_key)
            raise MoveError(
                f"Error moving messages to {destination.key}: {e}", destination, message_ids
            ) from e

        for box, key in resolved:
            try:
                box.discard(key)
            except OSError as e:
                logger.error("Copied %s to %s but could not remove it: %s", key, destination.key, e)


class MaildirNewMailSource:
    """
    Polls account inboxes for messages delivered to ``new/``.

    The first poll records what is already there without notifying.
    """

    def __init__(self, store: MaildirStore) -> None:
        self.store = store
        self._listeners: list[NewMailListener] = []
        self._seen: dict[str, set[str]] = {}
        self._primed = False

    def add_listener(self, listener: NewMailListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: NewMailListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _new_keys(self, account_id: str) -> set[str]:
        new_dir = self.store.root / account_id / "new"
        try:
            return {name.split(":")[0] for name in os.listdir(new_dir) if not name.startswith(".")}
        except FileNotFoundError:
            return set()

    async def poll(self) -> int:
        """
        Check every inbox once and notify listeners of new arrivals.

        Returns:
            Number of new messages found.
        """
        found = 0
        for folder in await self.store.inbox_folders(True, set()):
            keys = self._new_keys(folder.account_id)
            fresh = keys - self._seen.get(folder.account_id, set())
            self._seen[folder.account_id] = keys
            if not self._primed or not fresh:
                continue

            try:
                box = self.store.open_folder(folder.account_id, folder.path)
            except MailStoreError as e:
                logger.error("Error opening %s: %s", folder.label, e)
                continue

            messages = []
            for key in sorted(fresh):
                try:
                    messages.append(self.store.summarize(folder, key, box.get_message(key)))
                except KeyError:
                    continue
            found += len(messages)

            for listener in list(self._listeners):
                try:
                    await listener(folder, messages)
                except FilterMoveMailError as e:
                    logger.error("New mail listener failed for %s: %s", folder.label, e)

        self._primed = True
        return found
