"""
History Ledger

Append-only audit log of every action taken on a request. Entries are
numbered per request so that two actions sharing a timestamp still list in
the order they happened; the (request_id, sequence) unique constraint also
rejects a second writer that raced on the same request.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from chainflow.core.exceptions import NotFoundError
from chainflow.models.base import normalize_id, utcnow
from chainflow.models.request import (
    ClarificationScope,
    HistoryAction,
    Request,
    RequestHistory,
    RequestStatus,
)

logger = logging.getLogger(__name__)


class HistoryLedger:
    """Writes and reads request history entries"""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        request: Request,
        actor_id: str,
        action: HistoryAction,
        comments: Optional[str] = None,
        from_status: Optional[RequestStatus] = None,
        to_status: Optional[RequestStatus] = None,
        from_step_number: Optional[int] = None,
        to_step_number: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        scope: Optional[ClarificationScope] = None,
        addressed_to: Optional[List[str]] = None,
        target_request_id: Optional[str] = None,
    ) -> RequestHistory:
        """
        Append one entry to a request's history

        The entry is flushed but not committed; the caller owns the
        transaction so the entry lands together with the state change it
        records.
        """
        entry = RequestHistory(
            request_id=request.id,
            sequence=self._next_sequence(request.id),
            actor_id=actor_id,
            action=action,
            comments=comments,
            from_status=from_status,
            to_status=to_status,
            from_step_number=from_step_number,
            to_step_number=to_step_number,
            entry_metadata=metadata,
            scope=scope,
            addressed_to=addressed_to,
            target_request_id=target_request_id,
            created_at=utcnow(),
        )
        self.db.add(entry)
        self.db.flush()

        logger.debug(
            f"History entry {entry.sequence} ({action.value}) appended to request {request.id}"
        )
        return entry

    def list_for_request(self, request_id: str) -> List[RequestHistory]:
        """All entries of a request, oldest first"""
        normalized = normalize_id(request_id)
        if normalized is None:
            raise NotFoundError("Request", request_id)
        if self.db.query(Request.id).filter(Request.id == normalized).first() is None:
            raise NotFoundError("Request", request_id)

        return (
            self.db.query(RequestHistory)
            .filter(RequestHistory.request_id == normalized)
            .order_by(RequestHistory.created_at, RequestHistory.sequence)
            .all()
        )

    def _next_sequence(self, request_id: str) -> int:
        current = (
            self.db.query(func.max(RequestHistory.sequence))
            .filter(RequestHistory.request_id == request_id)
            .scalar()
        )
        return (current or 0) + 1
