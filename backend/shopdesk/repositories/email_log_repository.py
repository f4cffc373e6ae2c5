"""Email log persistence."""

from typing import List

from sqlalchemy.orm import Session

from ..models.email_log import EmailLog
from .base_repository import BaseRepository


class EmailLogRepository(BaseRepository[EmailLog]):
    def __init__(self, db: Session):
        super().__init__(db, EmailLog)

    def list_for_order(self, order_id: str) -> List[EmailLog]:
        query = (
            self._build_query()
            .filter(EmailLog.related_order_id == order_id)
            .order_by(EmailLog.created_at)
        )
        return self._execute_query(query)
