"""New mail subscription: applies rules to incoming messages while enabled."""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from filter_move_mail.errors import FilterMoveMailError
from filter_move_mail.mail.messages import FolderRef, MessageSummary

if TYPE_CHECKING:
    from filter_move_mail.mail.maildir import MaildirNewMailSource
    from filter_move_mail.mail.store import NewMailListener, NewMailSource
    from filter_move_mail.service import FilterService
    from filter_move_mail.storage.store import FilterSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unsubscribed:
    """No listener is registered."""


@dataclass(frozen=True)
class Subscribed:
    """A listener is registered with the new mail source."""

    handle: "NewMailListener"


SubscriptionState = Unsubscribed | Subscribed


class NewMailSubscription:
    """
    Owns the new mail listener registration.

    The state only changes through ``apply_settings`` (or the explicit
    ``subscribe`` / ``unsubscribe``). Both transitions are idempotent.
    """

    def __init__(self, source: "NewMailSource", service: "FilterService") -> None:
        self.source = source
        self.service = service
        self.state: SubscriptionState = Unsubscribed()

    @property
    def is_subscribed(self) -> bool:
        return isinstance(self.state, Subscribed)

    async def _on_new_mail(self, folder: FolderRef, messages: list[MessageSummary]) -> None:
        try:
            result = await self.service.handle_new_mail(folder, messages)
        except FilterMoveMailError as e:
            logger.error("Error applying rules to new mail in %s: %s", folder.label, e)
            return
        if result.total_moved:
            logger.info("%s -> %d new message(s) moved", folder.label, result.total_moved)

    def subscribe(self) -> None:
        if self.is_subscribed:
            return
        handle = self._on_new_mail
        self.source.add_listener(handle)
        self.state = Subscribed(handle)
        logger.info("New message listener activated")

    def unsubscribe(self) -> None:
        if not isinstance(self.state, Subscribed):
            return
        self.source.remove_listener(self.state.handle)
        self.state = Unsubscribed()
        logger.info("New message listener deactivated")

    def apply_settings(self, settings: "FilterSettings") -> None:
        """Subscribe or unsubscribe to match ``apply_on_new_message``."""
        if settings.apply_on_new_message:
            self.subscribe()
        else:
            self.unsubscribe()


async def watch(
    source: "MaildirNewMailSource",
    subscription: NewMailSubscription,
    interval_seconds: float,
    stop: asyncio.Event | None = None,
) -> None:
    """
    Poll ``source`` until ``stop`` is set, re-reading settings each cycle.

    Args:
        source: Polling new mail source.
        subscription: Controller toggled from the stored settings.
        interval_seconds: Delay between polls.
        stop: Event that ends the loop; runs forever if None.
    """
    stop = stop or asyncio.Event()
    try:
        while not stop.is_set():
            try:
                subscription.apply_settings(subscription.service.rule_store.load_settings())
                await source.poll()
            except FilterMoveMailError as e:
                logger.error("Error checking for new mail: %s", e)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        subscription.unsubscribe()
