"""Run entry points: all rules, chosen folders, a single rule, new mail."""

import logging
from typing import TYPE_CHECKING

from filter_move_mail.errors import MailStoreError
from filter_move_mail.mail.messages import FolderRef, MessageSummary
from filter_move_mail.rules.engine import Rule, RuleEngine, RunOptions, RunResult

if TYPE_CHECKING:
    from filter_move_mail.mail.addressbook import AddressBook
    from filter_move_mail.mail.store import AccountDirectory, MailStore
    from filter_move_mail.storage.store import RuleStore

logger = logging.getLogger(__name__)


class FilterService:
    """Loads rules and settings from the store and drives the rule engine."""

    def __init__(
        self,
        rule_store: "RuleStore",
        mail_store: "MailStore",
        directory: "AccountDirectory",
        address_book: "AddressBook | None" = None,
    ) -> None:
        self.rule_store = rule_store
        self.directory = directory
        self.engine = RuleEngine(mail_store, address_book)

    async def _run_options(self) -> RunOptions:
        settings = self.rule_store.load_settings()
        if not settings.remove_own_emails:
            return RunOptions()
        own = await self.directory.own_addresses()
        return RunOptions(exclude_own_addresses=True, own_addresses=frozenset(own))

    def manual_rules(self) -> list[Rule]:
        """Enabled rules that may be run by hand, in stored order."""
        return [r for r in self.rule_store.load_rules() if r.enabled and r.apply_manually]

    def new_mail_rules(self) -> list[Rule]:
        """Enabled rules that run on newly received messages, in stored order."""
        return [r for r in self.rule_store.load_rules() if r.enabled and r.apply_on_new_message]

    async def _run_folder(
        self, rules: list[Rule], folder: FolderRef, options: RunOptions
    ) -> RunResult:
        """Run rules over one folder; a folder that cannot be read is skipped."""
        try:
            return await self.engine.run(rules, folder, options)
        except MailStoreError as e:
            logger.error("Error scanning %s: %s", folder.label, e)
            return RunResult(failed_folders=[folder])

    async def _folders_for(self, rules: list[Rule]) -> list[tuple[FolderRef, list[Rule]]]:
        """Map each in-scope inbox to the rules targeting it, keeping rule order."""
        folder_map: dict[str, tuple[FolderRef, list[Rule]]] = {}
        for rule in rules:
            scope = rule.account_scope
            for folder in await self.directory.inbox_folders(
                scope.all_accounts, set(scope.account_ids)
            ):
                folder_map.setdefault(folder.key, (folder, []))[1].append(rule)
        return list(folder_map.values())

    async def run_all_rules(self) -> RunResult:
        """
        Run every manual rule over the inboxes of its accounts.

        Only inboxes are scanned, so moved messages are never picked up again
        from their destination folder. Each inbox is scanned once with all of
        the rules that target it.

        Returns:
            Aggregated RunResult over all scanned inboxes.
        """
        rules = self.manual_rules()
        total = RunResult()
        if not rules:
            logger.info("No active rules")
            return total

        options = await self._run_options()
        for folder, folder_rules in await self._folders_for(rules):
            total.merge(await self._run_folder(folder_rules, folder, options))
        return total

    async def run_rules_on_folders(self, folders: list[FolderRef]) -> RunResult:
        """Run every manual rule over each of the given folders."""
        rules = self.manual_rules()
        total = RunResult()
        if not rules:
            return total

        options = await self._run_options()
        for folder in folders:
            total.merge(await self._run_folder(rules, folder, options))
        return total

    async def run_selected_rule(self, rule_id: str) -> RunResult:
        """
        Run one rule over the inboxes of its accounts.

        Raises:
            RuleNotFoundError: If no rule has this id.
        """
        rule = self.rule_store.get_rule(rule_id)
        options = await self._run_options()
        total = RunResult()
        for folder, folder_rules in await self._folders_for([rule]):
            total.merge(await self._run_folder(folder_rules, folder, options))
        return total

    async def handle_new_mail(
        self, folder: FolderRef, messages: list[MessageSummary]
    ) -> RunResult:
        """Apply new-mail rules to messages that just arrived in ``folder``."""
        rules = [r for r in self.new_mail_rules() if r.account_scope.includes(folder.account_id)]
        if not rules or not messages:
            return RunResult()

        logger.info("New messages detected in %s", folder.label)
        options = await self._run_options()
        return await self.engine.run_on_messages(rules, messages, folder, options)
