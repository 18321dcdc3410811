"""
Role/Access Provider

The engine only consumes roles; provisioning users and roles happens
elsewhere. Two implementations are bundled: one backed by the
``user_role_assignments`` table and one held in memory.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, Set, Tuple

from sqlalchemy.orm import Session

from chainflow.models.request import UserRoleAssignment

logger = logging.getLogger(__name__)


class RoleProvider(ABC):
    """Resolves a user's roles within a business unit"""

    @abstractmethod
    def get_roles_for_user(self, user_id: str, business_unit_id: str) -> Set[str]:
        """Return the role ids the user holds in the business unit"""

    @abstractmethod
    def has_members(self, role_id: str, business_unit_id: str) -> bool:
        """Return True if at least one user holds the role in the business unit"""

    def is_eligible_approver(self, role_id: str, step) -> bool:
        """
        Decide whether holding ``role_id`` lets a user act on ``step``

        ``step`` is anything with an ``approver_role_id`` attribute: a section
        step definition or a request's approval-step row.
        """
        return role_id == step.approver_role_id

    def can_act_on_step(self, user_id: str, business_unit_id: str, step) -> bool:
        roles = self.get_roles_for_user(user_id, business_unit_id)
        return any(self.is_eligible_approver(role_id, step) for role_id in roles)


class DatabaseRoleProvider(RoleProvider):
    """Role lookups against the user_role_assignments table"""

    def __init__(self, db: Session):
        self.db = db

    def get_roles_for_user(self, user_id: str, business_unit_id: str) -> Set[str]:
        rows = (
            self.db.query(UserRoleAssignment.role_id)
            .filter(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.business_unit_id == business_unit_id,
            )
            .all()
        )
        return {row.role_id for row in rows}

    def has_members(self, role_id: str, business_unit_id: str) -> bool:
        return (
            self.db.query(UserRoleAssignment.id)
            .filter(
                UserRoleAssignment.role_id == role_id,
                UserRoleAssignment.business_unit_id == business_unit_id,
            )
            .first()
            is not None
        )

    def assign_role(self, user_id: str, business_unit_id: str, role_id: str) -> UserRoleAssignment:
        """Grant a role; returns the existing assignment if already granted"""
        existing = (
            self.db.query(UserRoleAssignment)
            .filter(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.business_unit_id == business_unit_id,
                UserRoleAssignment.role_id == role_id,
            )
            .first()
        )
        if existing:
            return existing

        assignment = UserRoleAssignment(
            user_id=user_id, business_unit_id=business_unit_id, role_id=role_id
        )
        self.db.add(assignment)
        self.db.commit()
        self.db.refresh(assignment)

        logger.info(f"Assigned role {role_id} to user {user_id} in business unit {business_unit_id}")
        return assignment


class InMemoryRoleProvider(RoleProvider):
    """Dictionary-backed provider for tests and embedded use"""

    def __init__(self, assignments: Iterable[Tuple[str, str, str]] = ()):
        self._roles: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
        for user_id, business_unit_id, role_id in assignments:
            self.grant(user_id, business_unit_id, role_id)

    def grant(self, user_id: str, business_unit_id: str, role_id: str) -> None:
        self._roles[(str(user_id), str(business_unit_id))].add(role_id)

    def revoke(self, user_id: str, business_unit_id: str, role_id: str) -> None:
        self._roles[(str(user_id), str(business_unit_id))].discard(role_id)

    def get_roles_for_user(self, user_id: str, business_unit_id: str) -> Set[str]:
        return set(self._roles.get((str(user_id), str(business_unit_id)), set()))

    def has_members(self, role_id: str, business_unit_id: str) -> bool:
        return any(
            bu == str(business_unit_id) and role_id in roles
            for (_, bu), roles in self._roles.items()
        )
