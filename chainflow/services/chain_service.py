"""
Chain Definition Service

Creates, versions and activates workflow chains. An activated chain is never
edited in place: edits produce a new draft version (copy-on-edit) so that
in-flight requests keep the semantics they were started with.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chainflow.core.exceptions import (
    ChainflowError,
    ChainLockedError,
    ConfigurationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chainflow.models.base import normalize_id
from chainflow.models.request import TERMINAL_STATUSES, Request
from chainflow.models.workflow import (
    ChainStatus,
    InitiatorType,
    WorkflowChain,
    WorkflowSection,
    WorkflowSectionStep,
)
from chainflow.schemas.workflow import (
    WorkflowChainCreate,
    WorkflowChainEdit,
    WorkflowChainSummary,
    WorkflowSectionInput,
)
from chainflow.services.role_provider import RoleProvider

logger = logging.getLogger(__name__)


class ChainDefinitionService:
    """Service for managing versioned workflow chain definitions"""

    def __init__(self, db: Session, role_provider: RoleProvider):
        self.db = db
        self.roles = role_provider

    def create_chain(
        self, chain_data: WorkflowChainCreate, actor_id: Optional[str] = None
    ) -> WorkflowChain:
        """
        Create version 1 of a new chain as a draft

        Raises:
            ValidationError: If a chain with the same name already exists in the
                business unit, or the sections repeat an order
        """
        existing = (
            self.db.query(WorkflowChain)
            .filter(
                WorkflowChain.business_unit_id == chain_data.business_unit_id,
                WorkflowChain.name == chain_data.name,
                WorkflowChain.is_latest == True,  # noqa: E712
            )
            .first()
        )
        if existing:
            raise ValidationError(
                f"Chain '{chain_data.name}' already exists in this business unit; "
                "create a new version instead",
                details={"chain_id": existing.id},
            )

        chain = WorkflowChain(
            business_unit_id=chain_data.business_unit_id,
            name=chain_data.name,
            description=chain_data.description,
            version=1,
            is_latest=True,
            status=ChainStatus.DRAFT,
            created_by=actor_id,
            updated_by=actor_id,
        )
        chain.sections = self._build_sections(chain_data.sections)

        self.db.add(chain)
        self.db.commit()
        self.db.refresh(chain)

        logger.info(f"Created chain {chain.id} '{chain.name}' v{chain.version}")
        return chain

    def get_chain(self, chain_id: str) -> WorkflowChain:
        normalized = normalize_id(chain_id)
        chain = None
        if normalized is not None:
            chain = (
                self.db.query(WorkflowChain).filter(WorkflowChain.id == normalized).first()
            )
        if not chain:
            raise NotFoundError("WorkflowChain", chain_id)
        return chain

    def get_active_chain(self, business_unit_id: str, name: str) -> WorkflowChain:
        """The highest active version of a chain"""
        chain = (
            self.db.query(WorkflowChain)
            .filter(
                WorkflowChain.business_unit_id == business_unit_id,
                WorkflowChain.name == name,
                WorkflowChain.status == ChainStatus.ACTIVE,
            )
            .order_by(WorkflowChain.version.desc())
            .first()
        )
        if not chain:
            raise NotFoundError("Active WorkflowChain", name)
        return chain

    def list_chains(
        self, business_unit_id: str, include_archived: bool = False
    ) -> List[WorkflowChainSummary]:
        """Latest version of every chain in a business unit"""
        query = self.db.query(WorkflowChain).filter(
            WorkflowChain.business_unit_id == business_unit_id,
            WorkflowChain.is_latest == True,  # noqa: E712
        )
        if not include_archived:
            query = query.filter(WorkflowChain.status != ChainStatus.ARCHIVED)

        return [
            WorkflowChainSummary(
                id=chain.id,
                business_unit_id=chain.business_unit_id,
                name=chain.name,
                version=chain.version,
                is_latest=chain.is_latest,
                status=chain.status,
                section_count=len(chain.sections),
                total_steps=sum(len(section.steps) for section in chain.sections),
                updated_at=chain.updated_at,
            )
            for chain in query.order_by(WorkflowChain.name).all()
        ]

    def list_versions(self, chain_id: str) -> List[WorkflowChain]:
        """Every version in the chain's lineage, newest first"""
        chain = self.get_chain(chain_id)

        lineage = {chain.id: chain}
        ancestor = chain.parent_chain
        while ancestor is not None and ancestor.id not in lineage:
            lineage[ancestor.id] = ancestor
            ancestor = ancestor.parent_chain

        frontier = [chain.id]
        while frontier:
            children = (
                self.db.query(WorkflowChain)
                .filter(WorkflowChain.parent_chain_id.in_(frontier))
                .all()
            )
            frontier = [c.id for c in children if c.id not in lineage]
            for child in children:
                lineage[child.id] = child

        return sorted(lineage.values(), key=lambda c: c.version, reverse=True)

    def validate_chain(self, chain: WorkflowChain) -> List[str]:
        """Return every configuration problem of a chain (empty when valid)"""
        problems = []
        sections = sorted(chain.sections, key=lambda s: s.order)

        if not sections:
            return ["Chain has no sections"]

        orders = [s.order for s in sections]
        if orders != list(range(len(sections))):
            problems.append(f"Section orders must be contiguous from 0, got {orders}")

        for section in sections:
            label = f"Section {section.order} ('{section.name}')"
            if not section.steps:
                problems.append(f"{label} has no approval steps")
            else:
                numbers = sorted(step.step_number for step in section.steps)
                if numbers != list(range(1, len(numbers) + 1)):
                    problems.append(
                        f"{label} step numbers must be contiguous from 1, got {numbers}"
                    )
                for step in section.steps:
                    if not step.approver_role_id:
                        problems.append(
                            f"{label} step {step.step_number} has no approver role"
                        )
                    elif not self.roles.has_members(step.approver_role_id, chain.business_unit_id):
                        problems.append(
                            f"{label} step {step.step_number} role '{step.approver_role_id}' "
                            "has no members in the business unit"
                        )

            if section.initiator_type == InitiatorType.LAST_APPROVER:
                if section.order == 0:
                    problems.append(
                        f"{label} cannot use last_approver: there is no previous section"
                    )
            elif not section.initiator_role_ids:
                problems.append(f"{label} has no initiator roles")

        return problems

    def create_new_version(
        self, chain_id: str, edits: WorkflowChainEdit, actor_id: Optional[str] = None
    ) -> WorkflowChain:
        """
        Copy a chain into a new draft version with the edits applied

        Sections in the edit name the section they replace by ``id``; sections
        without an id are new. When ``edits.sections`` is omitted, every
        section is copied unchanged. The existing chain is re-read under lock;
        a concurrent edit that still gets through fails on the one-successor
        constraint.

        Raises:
            InvalidStateError: If the chain is not the latest version, or
                another edit created the next version first
            ChainLockedError: If in-flight requests sit at a section order the
                edit would remove or move
        """
        try:
            chain = self._lock_chain(chain_id)
            new_chain = self._copy_with_edits(chain, edits, actor_id)
            self.db.commit()
        except ChainflowError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Concurrent edit of chain {chain_id} lost: {e}")
            raise InvalidStateError(
                f"Chain {chain_id} was edited concurrently; a newer version already exists",
                details={"chain_id": chain_id},
            ) from e
        self.db.refresh(new_chain)

        logger.info(
            f"Created chain version {new_chain.id} v{new_chain.version} from {chain_id}"
        )
        return new_chain

    def _copy_with_edits(
        self, chain: WorkflowChain, edits: WorkflowChainEdit, actor_id: Optional[str]
    ) -> WorkflowChain:
        if not chain.is_latest:
            raise InvalidStateError(
                f"Chain {chain.id} v{chain.version} is not the latest version"
            )

        if edits.sections is None:
            section_inputs = [self._section_input(section) for section in chain.sections]
        else:
            section_inputs = edits.sections
            known_ids = {section.id for section in chain.sections}
            unknown = [s.id for s in section_inputs if s.id and normalize_id(s.id) not in known_ids]
            if unknown:
                raise ValidationError(
                    "Edited sections reference sections outside this chain",
                    details={"section_ids": unknown},
                )

        self._check_locked(chain, section_inputs)

        new_chain = WorkflowChain(
            business_unit_id=chain.business_unit_id,
            name=edits.name or chain.name,
            description=edits.description if edits.description is not None else chain.description,
            version=chain.version + 1,
            is_latest=True,
            status=ChainStatus.DRAFT,
            parent_chain_id=chain.id,
            created_by=actor_id,
            updated_by=actor_id,
        )
        new_chain.sections = self._build_sections(section_inputs)
        chain.is_latest = False
        chain.updated_by = actor_id

        self.db.add(new_chain)
        return new_chain

    def activate_chain(self, chain_id: str, actor_id: Optional[str] = None) -> WorkflowChain:
        """
        Make a draft chain the active version of its lineage

        Raises:
            InvalidStateError: If the chain is not a draft
            ConfigurationError: If the chain fails validation
        """
        chain = self.get_chain(chain_id)
        if chain.status != ChainStatus.DRAFT:
            raise InvalidStateError(
                f"Only draft chains can be activated; chain {chain.id} is {chain.status.value}"
            )

        problems = self.validate_chain(chain)
        if problems:
            raise ConfigurationError(
                f"Chain {chain.id} is misconfigured and cannot be activated", problems
            )

        for other in self.list_versions(chain.id):
            if other.id != chain.id and other.status == ChainStatus.ACTIVE:
                other.status = ChainStatus.ARCHIVED
                other.updated_by = actor_id
                logger.info(f"Archived chain {other.id} v{other.version} superseded by v{chain.version}")

        chain.status = ChainStatus.ACTIVE
        chain.updated_by = actor_id
        self.db.commit()
        self.db.refresh(chain)

        logger.info(f"Activated chain {chain.id} '{chain.name}' v{chain.version}")
        return chain

    def archive_chain(self, chain_id: str, actor_id: Optional[str] = None) -> WorkflowChain:
        """Stop a chain from accepting new requests; running requests continue"""
        chain = self.get_chain(chain_id)
        if chain.status == ChainStatus.ARCHIVED:
            raise InvalidStateError(f"Chain {chain.id} is already archived")

        chain.status = ChainStatus.ARCHIVED
        chain.updated_by = actor_id
        self.db.commit()
        self.db.refresh(chain)

        logger.info(f"Archived chain {chain.id} '{chain.name}' v{chain.version}")
        return chain

    def _lock_chain(self, chain_id: str) -> WorkflowChain:
        """Re-read a chain under lock, discarding cached state"""
        normalized = normalize_id(chain_id)
        chain = None
        if normalized is not None:
            chain = (
                self.db.query(WorkflowChain)
                .filter(WorkflowChain.id == normalized)
                .populate_existing()
                .with_for_update()
                .first()
            )
        if not chain:
            raise NotFoundError("WorkflowChain", chain_id)
        return chain

    def _check_locked(
        self, chain: WorkflowChain, section_inputs: List[WorkflowSectionInput]
    ) -> None:
        rows = (
            self.db.query(Request.current_section_order)
            .filter(
                Request.workflow_chain_id == chain.id,
                Request.status.notin_(TERMINAL_STATUSES),
            )
            .distinct()
            .all()
        )
        in_use = sorted(row.current_section_order for row in rows)
        if not in_use:
            return

        new_orders = {normalize_id(s.id): s.order for s in section_inputs if s.id}
        conflicts = []
        for order in in_use:
            section = chain.section_at(order)
            if section is None:
                continue
            if section.id not in new_orders:
                conflicts.append(f"Section {order} ('{section.name}') would be removed")
            elif new_orders[section.id] != order:
                conflicts.append(
                    f"Section {order} ('{section.name}') would move to {new_orders[section.id]}"
                )

        if conflicts:
            raise ChainLockedError(
                f"Chain {chain.id} has in-flight requests on sections the edit changes",
                details={"conflicts": conflicts, "sections_in_use": in_use},
            )

    def _build_sections(
        self, section_inputs: List[WorkflowSectionInput]
    ) -> List[WorkflowSection]:
        orders = [s.order for s in section_inputs]
        if len(orders) != len(set(orders)):
            raise ValidationError(
                "Section orders must be unique", details={"orders": orders}
            )

        sections = []
        for section_input in sorted(section_inputs, key=lambda s: s.order):
            section = WorkflowSection(
                order=section_input.order,
                name=section_input.name,
                description=section_input.description,
                form_template_id=section_input.form_template_id,
                initiator_type=section_input.initiator_type,
                initiator_role_ids=list(section_input.initiator_role_ids),
                trigger_condition=section_input.trigger_condition,
                auto_trigger=section_input.auto_trigger,
                auto_submit=section_input.auto_submit,
                target_template_id=section_input.target_template_id,
            )
            section.steps = [
                WorkflowSectionStep(step_number=number, approver_role_id=role_id)
                for number, role_id in enumerate(section_input.steps, start=1)
            ]
            sections.append(section)
        return sections

    @staticmethod
    def _section_input(section: WorkflowSection) -> WorkflowSectionInput:
        return WorkflowSectionInput(
            id=section.id,
            order=section.order,
            name=section.name,
            description=section.description,
            form_template_id=section.form_template_id,
            initiator_type=section.initiator_type,
            initiator_role_ids=list(section.initiator_role_ids or []),
            steps=[step.approver_role_id for step in section.steps],
            trigger_condition=section.trigger_condition,
            auto_trigger=section.auto_trigger,
            auto_submit=section.auto_submit,
            target_template_id=section.target_template_id,
        )
