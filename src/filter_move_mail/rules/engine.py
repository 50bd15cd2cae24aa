"""Rule engine: rule matching and batch execution over a folder."""

import logging
import random
import re
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from filter_move_mail.errors import MailStoreError
from filter_move_mail.logging import get_account_logger
from filter_move_mail.mail.messages import Destination, FolderRef, MessageSummary, MimeNode
from filter_move_mail.rules.conditions import (
    RULE_MODEL_CONFIG,
    Condition,
    ConditionField,
    evaluate_condition,
)

if TYPE_CHECKING:
    from filter_move_mail.mail.addressbook import AddressBook
    from filter_move_mail.mail.store import MailStore

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"<[^>]*>")


def generate_rule_id() -> str:
    """Generate a unique rule id (``filter_<millis>_<random>``)."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"filter_{int(time.time() * 1000)}_{suffix}"


class MatchMode(str, Enum):
    """How a rule combines its conditions."""

    ALL = "all"
    ANY = "any"


class RuleAction(BaseModel):
    """Move action: where matching messages go."""

    model_config = RULE_MODEL_CONFIG

    type: str = Field(default="move", pattern="^move$")
    destination_account_id: str | None = None
    destination_path: str | None = None

    @model_validator(mode="before")
    @classmethod
    def drop_derived_folder_id(cls, data: Any) -> Any:
        # Recomputed from account and path, never trusted from input
        if isinstance(data, dict):
            data = {
                k: v
                for k, v in data.items()
                if k not in ("destinationFolderId", "destination_folder_id")
            }
        return data

    @computed_field
    @property
    def destination_folder_id(self) -> str | None:
        """Convenience key derived from account and path."""
        if not self.is_valid:
            return None
        return f"{self.destination_account_id}:{self.destination_path}"

    @property
    def is_valid(self) -> bool:
        return bool(self.destination_account_id) and bool(self.destination_path)

    @property
    def destination(self) -> Destination:
        return Destination(
            account_id=self.destination_account_id or "",
            path=self.destination_path or "",
        )


class AccountScope(BaseModel):
    """Which accounts' folders a rule runs against."""

    model_config = RULE_MODEL_CONFIG

    all_accounts: bool = True
    account_ids: set[str] = Field(default_factory=set)

    def includes(self, account_id: str) -> bool:
        return self.all_accounts or account_id in self.account_ids


class Rule(BaseModel):
    """A named, ordered set of conditions with one move action."""

    model_config = RULE_MODEL_CONFIG

    id: str = Field(default_factory=generate_rule_id)
    name: str = Field(description="Human-readable rule name")
    enabled: bool = Field(default=True, description="Whether the rule is active")
    match_mode: MatchMode = Field(default=MatchMode.ANY)
    conditions: list[Condition] = Field(min_length=1)
    action: RuleAction = Field(default_factory=RuleAction)

    apply_on_new_message: bool = Field(default=False)
    apply_manually: bool = Field(default=True)
    apply_after_junk: bool = Field(default=False)
    account_scope: AccountScope = Field(default_factory=AccountScope, alias="selectedAccounts")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @property
    def active_conditions(self) -> list[Condition]:
        return [c for c in self.conditions if c.is_active]

    def is_applicable_to(self, folder: FolderRef) -> bool:
        """Enabled, has a destination, and does not move into its own source folder."""
        if not self.enabled or not self.action.is_valid:
            return False
        return not (
            self.action.destination_account_id == folder.account_id
            and self.action.destination_path == folder.path
        )


def extract_body_text(node: MimeNode | list[MimeNode] | None) -> str:
    """
    Build a plain-text view of a MIME tree.

    ``text/plain`` bodies are taken verbatim; ``text/html`` bodies have anything
    between angle brackets replaced by a space. This is a crude projection for
    substring matching, not an HTML parser.
    """
    if node is None:
        return ""
    if isinstance(node, list):
        return "".join(extract_body_text(part) for part in node)

    text = ""
    content_type = (node.content_type or "").lower()
    if node.body:
        if content_type == "text/plain":
            text += node.body
        elif content_type == "text/html":
            text += TAG_PATTERN.sub(" ", node.body)
    for part in node.parts:
        text += extract_body_text(part)
    return text


@dataclass
class RunOptions:
    """Options for one execution pass."""

    exclude_own_addresses: bool = False
    own_addresses: frozenset[str] = frozenset()


@dataclass
class RuleRunDetail:
    """Per-rule outcome of an execution pass."""

    rule_id: str
    rule_name: str
    matched_count: int
    destination_path: str | None = None
    folder: str | None = None


@dataclass
class RunResult:
    """Outcome of an execution pass."""

    total_moved: int = 0
    per_rule_counts: dict[str, int] = field(default_factory=dict)
    details: list[RuleRunDetail] = field(default_factory=list)
    failed_destinations: list[Destination] = field(default_factory=list)
    failed_folders: list[FolderRef] = field(default_factory=list)

    def merge(self, other: "RunResult") -> None:
        """Fold another result into this one."""
        self.total_moved += other.total_moved
        for rule_id, count in other.per_rule_counts.items():
            self.per_rule_counts[rule_id] = self.per_rule_counts.get(rule_id, 0) + count
        self.details.extend(other.details)
        self.failed_destinations.extend(other.failed_destinations)
        self.failed_folders.extend(other.failed_folders)


@dataclass
class _MoveGroup:
    destination: Destination
    message_ids: list[str] = field(default_factory=list)


class RuleEngine:
    """Engine for matching messages against rules and moving them in batches."""

    def __init__(
        self,
        store: "MailStore",
        address_book: "AddressBook | None" = None,
    ) -> None:
        """
        Initialize the rule engine.

        Args:
            store: Mail store used for listing, body retrieval and moves.
            address_book: Address book for the address book operators.
        """
        self.store = store
        self.address_book = address_book

    async def matches(
        self,
        rule: Rule,
        message: MessageSummary,
        options: RunOptions | None = None,
    ) -> bool:
        """
        Check if a message matches a rule's conditions.

        Every active condition is evaluated before the results are combined;
        evaluation does not short-circuit.

        Args:
            rule: The rule to check.
            message: The message to check.
            options: Run options (own-address exclusion).

        Returns:
            True if all/any active conditions hold, per the rule's match mode.
            Disabled rules and rules without active conditions never match.
        """
        if not rule.enabled:
            return False

        conditions = rule.active_conditions
        if not conditions:
            return False

        body_text = None
        if any(c.field is ConditionField.BODY for c in conditions):
            body_text = await self._fetch_body(message)

        excluded: frozenset[str] = frozenset()
        if options and options.exclude_own_addresses:
            excluded = options.own_addresses

        results = []
        for condition in conditions:
            results.append(
                await evaluate_condition(
                    condition,
                    message,
                    body_text,
                    self.address_book,
                    excluded_addresses=excluded,
                )
            )

        if rule.match_mode is MatchMode.ALL:
            return all(results)
        return any(results)

    async def _fetch_body(self, message: MessageSummary) -> str:
        try:
            content = await self.store.get_full_content(message.id)
        except MailStoreError as e:
            logger.error("Error reading body of message %s: %s", message.id, e)
            return ""
        return extract_body_text(content)

    async def load_messages(self, folder: FolderRef) -> list[MessageSummary]:
        """Load every message of a folder, following page cursors to the end."""
        page = await self.store.list(folder)
        messages = list(page.messages)
        while page.cursor is not None:
            page = await self.store.continue_list(page.cursor)
            messages.extend(page.messages)
        return messages

    async def run(
        self,
        rules: list[Rule],
        folder: FolderRef,
        options: RunOptions | None = None,
    ) -> RunResult:
        """
        Run rules over every message in a folder.

        Args:
            rules: Rules in priority order.
            folder: Folder to scan.
            options: Run options.

        Returns:
            RunResult with the number of moved messages and per-rule counts.
        """
        if not any(r.is_applicable_to(folder) for r in rules):
            return RunResult()

        messages = await self.load_messages(folder)
        if not messages:
            return RunResult()

        return await self.run_on_messages(rules, messages, folder, options)

    async def run_on_messages(
        self,
        rules: list[Rule],
        messages: list[MessageSummary],
        folder: FolderRef,
        options: RunOptions | None = None,
    ) -> RunResult:
        """
        Run rules over an already loaded set of messages from ``folder``.

        Each message goes to the first matching rule only. Matched messages are
        grouped by destination and each group is moved with a single call; a
        failed group is logged and does not affect the others.
        """
        applicable = [r for r in rules if r.is_applicable_to(folder)]
        if not applicable:
            return RunResult()

        groups: dict[Destination, _MoveGroup] = {}
        counts: dict[str, int] = {r.id: 0 for r in applicable}
        matched: dict[str, list[MessageSummary]] = {r.id: [] for r in applicable}

        for message in messages:
            for rule in applicable:
                if not await self.matches(rule, message, options):
                    continue

                destination = rule.action.destination
                group = groups.setdefault(destination, _MoveGroup(destination))
                group.message_ids.append(message.id)
                counts[rule.id] += 1
                matched[rule.id].append(message)
                break

        result = RunResult(per_rule_counts=counts)
        for destination, group in groups.items():
            if not group.message_ids:
                continue
            try:
                await self.store.move(group.message_ids, group.destination)
            except MailStoreError as e:
                logger.error(
                    "Error moving %d message(s) to %s: %s", len(group.message_ids), destination.key, e
                )
                result.failed_destinations.append(destination)
                continue
            result.total_moved += len(group.message_ids)

        for rule in applicable:
            result.details.append(
                RuleRunDetail(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    matched_count=counts[rule.id],
                    destination_path=rule.action.destination_path,
                    folder=folder.label,
                )
            )

        if result.total_moved:
            self._log_summary(folder, applicable, counts, matched, result.total_moved)

        return result

    def _log_summary(
        self,
        folder: FolderRef,
        rules: list[Rule],
        counts: dict[str, int],
        matched: dict[str, list[MessageSummary]],
        total_moved: int,
    ) -> None:
        lines = [f"{folder.label} -> {total_moved} message(s) moved"]
        for rule in rules:
            if not counts[rule.id]:
                continue
            lines.append(
                f'  Rule "{rule.name}" ({counts[rule.id]}) -> {rule.action.destination_path}'
            )
            for msg in matched[rule.id]:
                lines.append(f"      {msg.author or '(unknown)'} | {msg.subject or '(no subject)'}")
        get_account_logger(folder.account_name or folder.account_id).info("\n".join(lines))
