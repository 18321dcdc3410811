"""
Clarification Sub-ledger

Clarifications are history entries (REQUEST_CLARIFICATION or
ASK_PREVIOUS_SECTION) that stay open until someone resolves them. They
never change a request's status.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from chainflow.core.exceptions import NotFoundError
from chainflow.models.base import normalize_id, utcnow
from chainflow.models.request import (
    CLARIFICATION_ACTIONS,
    ClarificationScope,
    HistoryAction,
    Request,
    RequestHistory,
)
from chainflow.services.history_ledger import HistoryLedger

logger = logging.getLogger(__name__)

SCOPE_ACTIONS = {
    ClarificationScope.CURRENT_SECTION_APPROVERS: HistoryAction.REQUEST_CLARIFICATION,
    ClarificationScope.PREVIOUS_SECTION_PARTICIPANTS: HistoryAction.ASK_PREVIOUS_SECTION,
}


class ClarificationLedger:
    def __init__(self, db: Session, ledger: Optional[HistoryLedger] = None):
        self.db = db
        self.ledger = ledger or HistoryLedger(db)

    def open(
        self,
        request: Request,
        actor_id: str,
        question: str,
        scope: ClarificationScope,
        addressed_to: Optional[List[str]] = None,
        target_request_id: Optional[str] = None,
        step_number: Optional[int] = None,
    ) -> RequestHistory:
        """Record an open question; the entry's action follows from its scope"""
        entry = self.ledger.append(
            request,
            actor_id,
            SCOPE_ACTIONS[scope],
            comments=question,
            from_status=request.status,
            to_status=request.status,
            from_step_number=step_number,
            to_step_number=step_number,
            scope=scope,
            addressed_to=addressed_to or [],
            target_request_id=target_request_id,
        )
        logger.info(
            f"Clarification {entry.id} opened on request {request.id} ({scope.value})"
        )
        return entry

    def resolve(
        self, entry: RequestHistory, request: Request, resolver_id: str
    ) -> Tuple[RequestHistory, bool]:
        """
        Mark a clarification resolved

        Returns:
            The entry and whether this call resolved it. Resolving an
            already-resolved entry changes nothing and appends nothing.
        """
        if entry.resolved_at is not None:
            return entry, False

        entry.resolved_at = utcnow()
        entry.resolver_id = resolver_id
        self.ledger.append(
            request,
            resolver_id,
            HistoryAction.RESOLVE_CLARIFICATION,
            from_status=request.status,
            to_status=request.status,
            metadata={"clarification_id": entry.id},
        )
        logger.info(f"Clarification {entry.id} resolved by {resolver_id}")
        return entry, True

    def get(self, entry_id: str) -> RequestHistory:
        normalized = normalize_id(entry_id)
        entry = None
        if normalized is not None:
            entry = (
                self.db.query(RequestHistory)
                .filter(
                    RequestHistory.id == normalized,
                    RequestHistory.action.in_(CLARIFICATION_ACTIONS),
                )
                .first()
            )
        if entry is None:
            raise NotFoundError("Clarification", entry_id)
        return entry

    def list_open(self, request_id: str) -> List[RequestHistory]:
        return (
            self.db.query(RequestHistory)
            .filter(
                RequestHistory.request_id == request_id,
                RequestHistory.action.in_(CLARIFICATION_ACTIONS),
                RequestHistory.resolved_at.is_(None),
            )
            .order_by(RequestHistory.created_at, RequestHistory.sequence)
            .all()
        )

    def list_for_request(self, request_id: str) -> List[RequestHistory]:
        """Open and resolved clarifications of a request"""
        return (
            self.db.query(RequestHistory)
            .filter(
                RequestHistory.request_id == request_id,
                RequestHistory.action.in_(CLARIFICATION_ACTIONS),
            )
            .order_by(RequestHistory.created_at, RequestHistory.sequence)
            .all()
        )
