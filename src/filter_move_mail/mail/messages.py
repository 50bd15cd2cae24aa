"""Message, folder and MIME structures exchanged with the mail store."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FolderRef:
    """A folder inside one account."""

    account_id: str
    path: str
    account_name: str | None = None
    display_label: str | None = None

    @property
    def key(self) -> str:
        """Stable key used to deduplicate folders."""
        return f"{self.account_id}:{self.path}"

    @property
    def label(self) -> str:
        """Human-readable label for logs and reports."""
        if self.display_label:
            return self.display_label
        if self.account_name:
            return f"{self.account_name}{self.path}"
        return self.path


@dataclass(frozen=True)
class Destination:
    """Target of a move: an account and a folder path within it."""

    account_id: str
    path: str

    @property
    def key(self) -> str:
        return f"{self.account_id}:{self.path}"


@dataclass
class MessageSummary:
    """Header-level view of a message as listed by the mail store."""

    id: str
    author: str = ""
    recipients: list[str] = field(default_factory=list)
    cc_list: list[str] = field(default_factory=list)
    bcc_list: list[str] = field(default_factory=list)
    subject: str = ""


@dataclass
class MessagePage:
    """One page of a folder listing; ``cursor`` is None on the last page."""

    messages: list[MessageSummary]
    cursor: Any | None = None


@dataclass
class MimeNode:
    """A node of a message's MIME tree."""

    content_type: str
    body: str | None = None
    parts: list["MimeNode"] = field(default_factory=list)
