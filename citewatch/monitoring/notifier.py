"""Turn citation status transitions into persisted user notifications."""

import logging
from typing import Optional

from citewatch.database import get_session
from citewatch.integrations.identity import IdentityResolver
from citewatch.models.monitoring import CitationStatus
from citewatch.models.notification import Notification
from citewatch.monitoring.transitions import TransitionEvent

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "citation_status_change"
NOTIFICATION_TITLE = "Citation Status Changed"


def build_message(event: TransitionEvent) -> str:
    state = "cited" if event.new_status == CitationStatus.CITED else "not cited"
    return f"Citation status changed for query '{event.query}', now {state}."


class Notifier:
    """Write one notification per transition event.

    Failures never propagate: a missing contact or a storage error is
    logged and ``notify`` returns None.
    """

    def __init__(self, identity_resolver: Optional[IdentityResolver] = None):
        self._identity = identity_resolver

    async def notify(self, event: TransitionEvent) -> Optional[int]:
        """Store the notification and return its id."""
        try:
            contact = None
            if self._identity is not None:
                contact = await self._identity.resolve(event.user_id)
                if not contact:
                    logger.warning(
                        "No contact for user %s; skipping notification for entry %s",
                        event.user_id, event.entry_id,
                    )
                    return None

            message = build_message(event)
            with get_session() as session:
                notification = Notification(
                    user_id=event.user_id,
                    type=NOTIFICATION_TYPE,
                    title=NOTIFICATION_TITLE,
                    message=message,
                    data={
                        "entry_id": event.entry_id,
                        "query": event.query,
                        "domain": event.domain,
                        "is_cited": event.new_status == CitationStatus.CITED,
                        "previous_status": event.previous_status.value,
                        "citation_position": event.result.citation_position,
                        "engine": event.result.engine,
                        "contact": contact,
                    },
                    read=False,
                )
                session.add(notification)
                session.flush()
                notification_id = notification.id
            logger.info("Notification %s: %s", notification_id, message)
            return notification_id
        except Exception as exc:
            logger.error("Notification for entry %s failed: %s", event.entry_id, exc)
            return None
