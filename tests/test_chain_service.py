"""
Tests for the chain definition service
Creating, validating, activating and versioning workflow chains
"""

from uuid import uuid4

import pytest

from chainflow.core.exceptions import (
    ChainLockedError,
    ConfigurationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chainflow.models.workflow import ChainStatus, InitiatorType, WorkflowChain
from chainflow.schemas.workflow import WorkflowChainCreate, WorkflowChainEdit
from chainflow.services.chain_service import ChainDefinitionService
from tests.conftest import section_input


class TestCreateChain:
    """Test chain creation"""

    def test_create_chain_as_draft_version_one(self, chain_service, business_unit_id, manager_id):
        chain = chain_service.create_chain(
            WorkflowChainCreate(
                business_unit_id=business_unit_id,
                name="Capex",
                description="Capital expenditure",
                sections=[
                    section_input(0, ["manager", "director"]),
                    section_input(1, ["finance"], initiator_type="last_approver", initiator_role_ids=[]),
                ],
            ),
            actor_id=manager_id,
        )

        assert chain.version == 1
        assert chain.is_latest is True
        assert chain.status == ChainStatus.DRAFT
        assert chain.created_by == manager_id
        assert [s.order for s in chain.sections] == [0, 1]
        assert [(st.step_number, st.approver_role_id) for st in chain.sections[0].steps] == [
            (1, "manager"),
            (2, "director"),
        ]
        assert chain.sections[1].initiator_type == InitiatorType.LAST_APPROVER

    def test_duplicate_name_in_business_unit(self, chain_service, business_unit_id):
        data = WorkflowChainCreate(
            business_unit_id=business_unit_id, name="Capex", sections=[section_input(0, ["manager"])]
        )
        chain_service.create_chain(data)

        with pytest.raises(ValidationError):
            chain_service.create_chain(data)

    def test_same_name_in_other_business_unit(self, chain_service, business_unit_id):
        chain_service.create_chain(
            WorkflowChainCreate(
                business_unit_id=business_unit_id, name="Capex", sections=[section_input(0, ["manager"])]
            )
        )
        other = chain_service.create_chain(
            WorkflowChainCreate(
                business_unit_id=str(uuid4()), name="Capex", sections=[section_input(0, ["manager"])]
            )
        )
        assert other.version == 1

    def test_duplicate_section_orders(self, chain_service, business_unit_id):
        with pytest.raises(ValidationError):
            chain_service.create_chain(
                WorkflowChainCreate(
                    business_unit_id=business_unit_id,
                    name="Capex",
                    sections=[section_input(0, ["manager"]), section_input(0, ["director"])],
                )
            )

    def test_unknown_chain(self, chain_service):
        with pytest.raises(NotFoundError):
            chain_service.get_chain(str(uuid4()))
        with pytest.raises(NotFoundError):
            chain_service.get_chain("chain-1")


class TestValidateAndActivate:
    """Test chain validation and activation"""

    def test_valid_chain_has_no_problems(self, build_chain):
        chain = build_chain([section_input(0, ["manager"])], activate=False)
        assert chain.status == ChainStatus.DRAFT

    def test_activation_lists_every_problem(self, build_chain, chain_service):
        chain = build_chain(
            [
                section_input(0, ["manager"], initiator_type="last_approver", initiator_role_ids=[]),
                section_input(1, []),
                section_input(3, ["finance"], initiator_role_ids=[]),
            ],
            activate=False,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            chain_service.activate_chain(chain.id)

        problems = exc_info.value.problems
        assert any("contiguous from 0" in p for p in problems)
        assert any("cannot use last_approver" in p for p in problems)
        assert any("no approval steps" in p for p in problems)
        assert any("no initiator roles" in p for p in problems)
        assert chain_service.get_chain(chain.id).status == ChainStatus.DRAFT

    def test_activate_makes_chain_usable(self, build_chain, chain_service, business_unit_id):
        chain = build_chain([section_input(0, ["manager"])])

        assert chain.status == ChainStatus.ACTIVE
        assert chain_service.get_active_chain(business_unit_id, "Purchase approval").id == chain.id

    def test_only_drafts_can_be_activated(self, build_chain, chain_service):
        chain = build_chain([section_input(0, ["manager"])])

        with pytest.raises(InvalidStateError):
            chain_service.activate_chain(chain.id)

        chain_service.archive_chain(chain.id)
        with pytest.raises(InvalidStateError):
            chain_service.activate_chain(chain.id)

    def test_step_role_without_members_blocks_activation(
        self, build_chain, chain_service, role_provider, business_unit_id
    ):
        chain = build_chain([section_input(0, ["manager", "auditor"])], activate=False)

        with pytest.raises(ConfigurationError) as exc_info:
            chain_service.activate_chain(chain.id)

        assert exc_info.value.problems == [
            "Section 0 ('Section 0') step 2 role 'auditor' has no members in the business unit"
        ]
        assert chain_service.get_chain(chain.id).status == ChainStatus.DRAFT

        role_provider.grant(str(uuid4()), business_unit_id, "auditor")
        assert chain_service.activate_chain(chain.id).status == ChainStatus.ACTIVE

    def test_role_members_are_counted_per_business_unit(
        self, build_chain, chain_service, role_provider
    ):
        role_provider.grant(str(uuid4()), str(uuid4()), "auditor")
        chain = build_chain([section_input(0, ["auditor"])], activate=False)

        with pytest.raises(ConfigurationError):
            chain_service.activate_chain(chain.id)

    def test_archive(self, build_chain, chain_service, business_unit_id):
        chain = build_chain([section_input(0, ["manager"])])

        archived = chain_service.archive_chain(chain.id)

        assert archived.status == ChainStatus.ARCHIVED
        with pytest.raises(NotFoundError):
            chain_service.get_active_chain(business_unit_id, "Purchase approval")
        with pytest.raises(InvalidStateError):
            chain_service.archive_chain(chain.id)

    def test_list_chains_hides_archived(self, build_chain, chain_service, business_unit_id):
        build_chain([section_input(0, ["manager"])], name="Capex")
        travel = build_chain([section_input(0, ["manager", "director"])], name="Travel")
        chain_service.archive_chain(travel.id)

        names = [c.name for c in chain_service.list_chains(business_unit_id)]
        assert names == ["Capex"]

        summaries = chain_service.list_chains(business_unit_id, include_archived=True)
        assert [c.name for c in summaries] == ["Capex", "Travel"]
        assert summaries[1].total_steps == 2
        assert summaries[1].section_count == 1


class TestVersioning:
    """Test copy-on-edit versioning"""

    def test_new_version_copies_sections(self, build_chain, chain_service):
        original = build_chain([section_input(0, ["manager", "director"])])

        version = chain_service.create_new_version(
            original.id, WorkflowChainEdit(description="Second revision")
        )

        assert version.version == 2
        assert version.status == ChainStatus.DRAFT
        assert version.is_latest is True
        assert version.parent_chain_id == original.id
        assert version.description == "Second revision"
        assert [st.approver_role_id for st in version.sections[0].steps] == ["manager", "director"]
        assert version.sections[0].id != original.sections[0].id

        original = chain_service.get_chain(original.id)
        assert original.is_latest is False
        assert original.status == ChainStatus.ACTIVE

    def test_activating_new_version_archives_previous(
        self, build_chain, chain_service, business_unit_id
    ):
        original = build_chain([section_input(0, ["manager"])])
        version = chain_service.create_new_version(
            original.id,
            WorkflowChainEdit(
                sections=[section_input(0, ["director"], id=original.sections[0].id)]
            ),
        )

        chain_service.activate_chain(version.id)

        assert chain_service.get_chain(original.id).status == ChainStatus.ARCHIVED
        active = chain_service.get_active_chain(business_unit_id, "Purchase approval")
        assert active.id == version.id
        assert active.sections[0].steps[0].approver_role_id == "director"

    def test_only_latest_version_can_be_edited(self, build_chain, chain_service):
        original = build_chain([section_input(0, ["manager"])])
        chain_service.create_new_version(original.id, WorkflowChainEdit())

        with pytest.raises(InvalidStateError):
            chain_service.create_new_version(original.id, WorkflowChainEdit())

    def test_list_versions_from_any_version(self, build_chain, chain_service):
        original = build_chain([section_input(0, ["manager"])])
        second = chain_service.create_new_version(original.id, WorkflowChainEdit())
        third = chain_service.create_new_version(second.id, WorkflowChainEdit())

        expected = [third.id, second.id, original.id]
        assert [c.id for c in chain_service.list_versions(original.id)] == expected
        assert [c.id for c in chain_service.list_versions(second.id)] == expected

    def test_edit_referencing_foreign_section(self, build_chain, chain_service):
        original = build_chain([section_input(0, ["manager"])])

        with pytest.raises(ValidationError):
            chain_service.create_new_version(
                original.id,
                WorkflowChainEdit(sections=[section_input(0, ["manager"], id=str(uuid4()))]),
            )

    def test_concurrent_edits_create_one_new_version(
        self, db_session, build_chain, chain_service, role_provider, business_unit_id, other_session, monkeypatch
    ):
        """An edit that read the chain before another edit committed is refused"""
        chain_id = build_chain([section_input(0, ["manager"])]).id
        other_service = ChainDefinitionService(other_session, role_provider)
        check_locked = chain_service._check_locked
        winners = []

        def edited_meanwhile(chain, section_inputs):
            check_locked(chain, section_inputs)
            if not winners:
                winners.append(other_service.create_new_version(chain_id, WorkflowChainEdit()).id)

        monkeypatch.setattr(chain_service, "_check_locked", edited_meanwhile)

        with pytest.raises(InvalidStateError):
            chain_service.create_new_version(chain_id, WorkflowChainEdit())

        db_session.expire_all()
        latest = (
            db_session.query(WorkflowChain)
            .filter(
                WorkflowChain.business_unit_id == business_unit_id,
                WorkflowChain.is_latest == True,  # noqa: E712
            )
            .all()
        )
        assert [(c.id, c.version) for c in latest] == [(winners[0], 2)]
        assert chain_service.get_chain(chain_id).is_latest is False


class TestChainLocked:
    """In-flight requests pin the sections they sit on"""

    @pytest.fixture
    def chain(self, build_chain):
        return build_chain(
            [
                section_input(0, ["manager"]),
                section_input(1, ["finance"], name="Payment"),
            ]
        )

    @pytest.fixture
    def in_flight(self, request_service, chain, requester_id):
        return request_service.start_request(chain.id, 0, requester_id, submit=True)

    def test_removing_used_section_is_locked(self, chain_service, chain, in_flight):
        payment = chain.sections[1]

        with pytest.raises(ChainLockedError) as exc_info:
            chain_service.create_new_version(
                chain.id,
                WorkflowChainEdit(
                    sections=[section_input(0, ["finance"], id=payment.id)]
                ),
            )
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["sections_in_use"] == [0]

    def test_moving_used_section_is_locked(self, chain_service, chain, in_flight):
        review, payment = chain.sections

        with pytest.raises(ChainLockedError):
            chain_service.create_new_version(
                chain.id,
                WorkflowChainEdit(
                    sections=[
                        section_input(0, ["finance"], id=payment.id),
                        section_input(1, ["manager"], id=review.id),
                    ]
                ),
            )

    def test_changing_steps_of_used_section_is_allowed(self, chain_service, chain, in_flight):
        review, payment = chain.sections

        version = chain_service.create_new_version(
            chain.id,
            WorkflowChainEdit(
                sections=[
                    section_input(0, ["manager", "director"], id=review.id),
                    section_input(1, ["finance"], id=payment.id),
                ]
            ),
        )
        assert version.version == 2

    def test_terminal_requests_do_not_lock(
        self, chain_service, approval_engine, chain, in_flight, requester_id
    ):
        approval_engine.cancel(in_flight.id, requester_id, "Withdrawn")

        version = chain_service.create_new_version(
            chain.id, WorkflowChainEdit(sections=[section_input(0, ["director"])])
        )
        assert len(version.sections) == 1
