"""Error classes for filter-move-mail."""


class FilterMoveMailError(Exception):
    """Base class for all filter-move-mail errors."""


class MailStoreError(FilterMoveMailError):
    """Raised when the mail store rejects an operation."""


class MoveError(MailStoreError):
    """Raised when a batch of messages cannot be moved to a destination."""

    def __init__(
        self,
        message: str,
        destination: object | None = None,
        message_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.destination = destination
        self.message_ids = list(message_ids or [])


class AddressBookError(FilterMoveMailError):
    """Raised when an address book cannot be listed or searched."""


class ConfigImportError(FilterMoveMailError):
    """Raised when an exported configuration cannot be imported."""


class RuleNotFoundError(FilterMoveMailError):
    """Raised when a rule id does not exist in the store."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule not found: {rule_id}")
        self.rule_id = rule_id


class InvalidRuleError(FilterMoveMailError):
    """Raised when a rule cannot be saved (no name or no active condition)."""


class RuleStoreError(FilterMoveMailError):
    """Raised when stored rules or settings cannot be read or are invalid."""
