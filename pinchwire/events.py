"""Site event notifications routed through the delivery dispatcher."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pinchwire.config.models import EventsConfig
from pinchwire.delivery.dispatcher import DeliveryDispatcher

logger = logging.getLogger(__name__)

AVAILABLE_EVENTS: dict[str, str] = {
    "post_status_change": "Post status change (publish, draft, etc.)",
    "new_comment": "New comment posted",
    "user_register": "New user registration",
    "order_status_change": "Order status change",
    "post_delete": "Post deleted",
    "governance_finding": "Governance finding reported",
}

_EXCERPT_WORDS = 50


def _excerpt(text: str, words: int = _EXCERPT_WORDS) -> str:
    parts = text.split()
    if len(parts) <= words:
        return " ".join(parts)
    return " ".join(parts[:words]) + "..."


class SiteEventNotifier:
    """Build messages for host content events and dispatch the enabled ones."""

    def __init__(self, dispatcher: DeliveryDispatcher, config: EventsConfig) -> None:
        self._dispatcher = dispatcher
        self._config = config

    def configure(self, config: EventsConfig) -> None:
        self._config = config

    def is_event_enabled(self, event_type: str) -> bool:
        """An empty ``enabled`` list enables every event."""
        if not self._config.enabled:
            return True
        return event_type in self._config.enabled

    async def notify(self, event_type: str, message: str, context: dict[str, Any]) -> bool:
        if not self.is_event_enabled(event_type):
            logger.debug("site event disabled event_type=%s", event_type)
            return False
        return await self._dispatcher.dispatch(event_type, message, context)

    async def post_status_change(
        self,
        *,
        post_id: int,
        title: str,
        old_status: str,
        new_status: str,
        post_type: str = "post",
        url: str | None = None,
        author: str | None = None,
    ) -> bool:
        if old_status == new_status:
            return False
        return await self.notify(
            "post_status_change",
            f'Post "{title}" changed from {old_status} to {new_status}.',
            {
                "post_id": post_id,
                "post_title": title,
                "post_type": post_type,
                "old_status": old_status,
                "new_status": new_status,
                "url": url,
                "author": author,
            },
        )

    async def new_comment(
        self,
        *,
        comment_id: int,
        post_id: int,
        author: str,
        content: str,
        status: str = "approved",
    ) -> bool:
        return await self.notify(
            "new_comment",
            f"New comment by {author} on post #{post_id}.",
            {
                "comment_id": comment_id,
                "post_id": post_id,
                "author": author,
                "content": _excerpt(content),
                "status": status,
            },
        )

    async def user_register(
        self,
        *,
        user_id: int | str,
        display_name: str,
        email: str | None = None,
        roles: Iterable[str] = (),
    ) -> bool:
        return await self.notify(
            "user_register",
            f"New user registered: {display_name}.",
            {
                "user_id": user_id,
                "display_name": display_name,
                "email": email,
                "roles": list(roles),
            },
        )

    async def order_status_change(self, *, order_id: int, old_status: str, new_status: str) -> bool:
        if old_status == new_status:
            return False
        return await self.notify(
            "order_status_change",
            f"Order #{order_id} changed from {old_status} to {new_status}.",
            {"order_id": order_id, "old_status": old_status, "new_status": new_status},
        )

    async def post_delete(self, *, post_id: int, title: str, post_type: str = "post") -> bool:
        return await self.notify(
            "post_delete",
            f'Post "{title}" (#{post_id}) was deleted.',
            {"post_id": post_id, "post_title": title, "post_type": post_type},
        )
