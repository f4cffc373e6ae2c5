"""Repository helpers for the webhook event ledger."""

from __future__ import annotations

import logging
from typing import cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.webhook_event import WebhookEvent
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_CLAIMABLE_STATUSES = ("received", "failed")


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> WebhookEvent | None:
        """Find webhook event by source and external event ID."""
        result = (
            self.db.query(WebhookEvent)
            .filter(WebhookEvent.source == source, WebhookEvent.event_id == event_id)
            .first()
        )
        return cast(WebhookEvent | None, result)

    def claim_for_processing(self, event_pk: str) -> bool:
        """
        Atomically move an event to ``processing``.

        Only events still in a claimable status are updated, so a second
        worker handling the same delivery gets ``False``.
        """
        try:
            updated = (
                self.db.query(WebhookEvent)
                .filter(
                    WebhookEvent.id == event_pk,
                    WebhookEvent.status.in_(_CLAIMABLE_STATUSES),
                )
                .update({WebhookEvent.status: "processing"}, synchronize_session=False)
            )
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to claim webhook event %s: %s", event_pk, str(exc))
            raise RepositoryException("Failed to claim webhook event") from exc
        return bool(updated)
