"""
Tests for the request service
Chain starts, skip-starts, manual next-section starts, drafts and inboxes
"""

from uuid import uuid4

import pytest

from chainflow.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chainflow.models.request import HistoryAction, Request, RequestStatus
from chainflow.services.request_service import RequestService
from tests.conftest import section_input


@pytest.fixture
def three_section_chain(build_chain):
    return build_chain(
        [
            section_input(0, ["manager"], name="Request"),
            section_input(1, ["director"], name="Budget", initiator_type="last_approver", initiator_role_ids=[]),
            section_input(2, ["finance"], name="Payment", initiator_role_ids=["finance"]),
        ]
    )


class TestStartRequest:
    """Test starting requests"""

    def test_chain_start_creates_draft(self, request_service, two_step_chain, requester_id):
        organization_id = str(uuid4())
        request = request_service.start_request(
            two_step_chain.id, 0, requester_id, data={"amount": 3}, organization_id=organization_id
        )

        assert request.status == RequestStatus.DRAFT
        assert request.initiator_id == requester_id
        assert request.root_request_id == request.id
        assert request.parent_request_id is None
        assert request.business_unit_id == two_step_chain.business_unit_id
        assert request.organization_id == organization_id
        assert request.data == {"amount": 3}
        assert request.steps == []

    def test_start_and_submit(self, request_service, approval_engine, two_step_chain, requester_id):
        request = request_service.start_request(two_step_chain.id, 0, requester_id, submit=True)

        assert request.status == RequestStatus.IN_REVIEW
        assert request.current_step.step_number == 1
        assert [e.action for e in approval_engine.ledger.list_for_request(request.id)] == [
            HistoryAction.SUBMIT
        ]

    def test_non_initiator_role_is_forbidden(self, request_service, two_step_chain, manager_id, outsider_id):
        with pytest.raises(ForbiddenError):
            request_service.start_request(two_step_chain.id, 0, manager_id)
        with pytest.raises(ForbiddenError):
            request_service.start_request(two_step_chain.id, 0, outsider_id)

    def test_chain_must_be_active(self, request_service, build_chain, chain_service, requester_id):
        draft_chain = build_chain([section_input(0, ["manager"])], name="Draft", activate=False)
        with pytest.raises(InvalidStateError):
            request_service.start_request(draft_chain.id, 0, requester_id)

        archived = build_chain([section_input(0, ["manager"])], name="Old")
        chain_service.archive_chain(archived.id)
        with pytest.raises(InvalidStateError):
            request_service.start_request(archived.id, 0, requester_id)

    def test_unknown_chain_or_section(self, request_service, two_step_chain, requester_id):
        with pytest.raises(NotFoundError):
            request_service.start_request(str(uuid4()), 0, requester_id)
        with pytest.raises(NotFoundError):
            request_service.start_request("purchase", 0, requester_id)
        with pytest.raises(NotFoundError):
            request_service.start_request(two_step_chain.id, 5, requester_id)

    def test_scenario_skip_start_requires_reason(
        self, request_service, build_chain, requester_id
    ):
        """Starting mid-chain needs a reason and starts a new lineage"""
        chain = build_chain(
            [
                section_input(0, ["manager"]),
                section_input(1, ["director"]),
                section_input(2, ["finance"]),
            ]
        )

        with pytest.raises(ValidationError):
            request_service.start_request(chain.id, 1, requester_id)
        with pytest.raises(ValidationError):
            request_service.start_request(chain.id, 1, requester_id, skip_reason="   ")

        request = request_service.start_request(
            chain.id, 1, requester_id, skip_reason="Budget approved offline", submit=True
        )

        assert request.root_request_id == request.id
        assert request.parent_request_id is None
        assert request.skip_reason == "Budget approved offline"
        submit_entry = request_service.engine.ledger.list_for_request(request.id)[0]
        assert submit_entry.entry_metadata["skip_reason"] == "Budget approved offline"

    def test_skip_reason_ignored_for_first_section(self, request_service, two_step_chain, requester_id):
        request = request_service.start_request(two_step_chain.id, 0, requester_id, skip_reason="")
        assert request.skip_reason is None


class TestManualNextSection:
    """Test starting the next section by hand after approval"""

    @pytest.fixture
    def approved_first_section(self, request_service, approval_engine, three_section_chain, requester_id, manager_id):
        request = request_service.start_request(three_section_chain.id, 0, requester_id, submit=True)
        return approval_engine.approve(request.id, manager_id)

    def test_pending_section_starts_for_last_approver(
        self, request_service, three_section_chain, approved_first_section, manager_id, director_id
    ):
        pending = request_service.list_pending_section_starts(manager_id)

        assert len(pending) == 1
        assert pending[0].parent_request_id == approved_first_section.id
        assert pending[0].next_section_order == 1
        assert pending[0].next_section_name == "Budget"
        assert request_service.list_pending_section_starts(director_id) == []

    def test_pending_section_starts_by_business_unit(
        self, request_service, approved_first_section, business_unit_id, manager_id
    ):
        pending = request_service.list_pending_section_starts(manager_id, business_unit_id)

        assert [p.parent_request_id for p in pending] == [approved_first_section.id]
        assert request_service.list_pending_section_starts(manager_id, str(uuid4())) == []

    @pytest.mark.parametrize(
        "overrides",
        [{"auto_trigger": True}, {"trigger_condition": "WHEN_REJECTED"}],
        ids=["auto-trigger", "hands-over-on-rejection"],
    )
    def test_sections_not_started_by_hand_are_not_pending(
        self, request_service, approval_engine, build_chain, requester_id, manager_id, finance_id, overrides
    ):
        chain = build_chain(
            [
                section_input(0, ["manager"], **overrides),
                section_input(1, ["director"], initiator_role_ids=["finance"]),
            ]
        )
        request = request_service.start_request(chain.id, 0, requester_id, submit=True)
        approval_engine.approve(request.id, manager_id)

        assert request_service.list_pending_section_starts(finance_id) == []

    def test_last_approver_starts_next_section(
        self, request_service, three_section_chain, approved_first_section, manager_id
    ):
        request = request_service.start_request(
            three_section_chain.id,
            1,
            manager_id,
            parent_request_id=approved_first_section.id,
            skip_reason="ignored with a parent",
        )

        assert request.parent_request_id == approved_first_section.id
        assert request.root_request_id == approved_first_section.id
        assert request.initiator_id == manager_id
        assert request.skip_reason is None
        assert request_service.list_pending_section_starts(manager_id) == []

        with pytest.raises(InvalidStateError):
            request_service.start_request(
                three_section_chain.id, 1, manager_id, parent_request_id=approved_first_section.id
            )

    def test_other_users_cannot_start_next_section(
        self, request_service, three_section_chain, approved_first_section, requester_id
    ):
        with pytest.raises(ForbiddenError):
            request_service.start_request(
                three_section_chain.id, 1, requester_id, parent_request_id=approved_first_section.id
            )

    def test_parent_must_be_previous_section(
        self, request_service, three_section_chain, approved_first_section, finance_id
    ):
        with pytest.raises(ValidationError):
            request_service.start_request(
                three_section_chain.id, 2, finance_id, parent_request_id=approved_first_section.id
            )

    def test_parent_must_be_approved(
        self, request_service, three_section_chain, requester_id, manager_id
    ):
        parent = request_service.start_request(three_section_chain.id, 0, requester_id, submit=True)

        with pytest.raises(InvalidStateError):
            request_service.start_request(
                three_section_chain.id, 1, manager_id, parent_request_id=parent.id
            )

    def test_parent_from_other_chain(
        self, request_service, build_chain, three_section_chain, approved_first_section, manager_id
    ):
        other = build_chain(
            [
                section_input(0, ["manager"]),
                section_input(1, ["director"], initiator_type="last_approver", initiator_role_ids=[]),
            ],
            name="Other",
        )
        with pytest.raises(ValidationError):
            request_service.start_request(
                other.id, 1, manager_id, parent_request_id=approved_first_section.id
            )

    def test_request_chain_lists_lineage_in_section_order(
        self, request_service, approval_engine, three_section_chain, approved_first_section, manager_id, director_id, finance_id
    ):
        budget = request_service.start_request(
            three_section_chain.id, 1, manager_id, parent_request_id=approved_first_section.id, submit=True
        )
        approval_engine.approve(budget.id, director_id)
        payment = request_service.start_request(
            three_section_chain.id, 2, finance_id, parent_request_id=budget.id
        )

        lineage = request_service.get_request_chain(payment.id)

        assert [r.id for r in lineage] == [approved_first_section.id, budget.id, payment.id]
        assert {r.root_request_id for r in lineage} == {approved_first_section.id}

    def test_concurrent_starts_from_one_parent_create_one_successor(
        self,
        db_session,
        request_service,
        role_provider,
        three_section_chain,
        approved_first_section,
        manager_id,
        other_session,
        monkeypatch,
    ):
        """A start that found no successor before another start committed is refused"""
        chain_id, parent_id = three_section_chain.id, approved_first_section.id
        other_service = RequestService(other_session, role_provider)
        find_successor = request_service.engine.find_successor
        winners = []

        def started_meanwhile(request):
            found = find_successor(request)
            if not winners:
                winners.append(
                    other_service.start_request(chain_id, 1, manager_id, parent_request_id=parent_id).id
                )
            return found

        monkeypatch.setattr(request_service.engine, "find_successor", started_meanwhile)

        with pytest.raises(InvalidStateError):
            request_service.start_request(chain_id, 1, manager_id, parent_request_id=parent_id)

        db_session.expire_all()
        successors = db_session.query(Request).filter(Request.parent_request_id == parent_id).all()
        assert [r.id for r in successors] == winners


class TestDrafts:
    """Test draft editing"""

    def test_initiator_edits_draft(self, request_service, two_step_chain, requester_id):
        draft = request_service.start_request(two_step_chain.id, 0, requester_id, data={"amount": 1})

        updated = request_service.update_draft(draft.id, requester_id, {"amount": 2})

        assert updated.data == {"amount": 2}
        assert updated.status == RequestStatus.DRAFT

    def test_others_cannot_edit(self, request_service, two_step_chain, requester_id, manager_id):
        draft = request_service.start_request(two_step_chain.id, 0, requester_id)

        with pytest.raises(ForbiddenError):
            request_service.update_draft(draft.id, manager_id, {"amount": 2})

    def test_submitted_request_cannot_be_edited(self, request_service, submitted_request, requester_id):
        with pytest.raises(InvalidStateError):
            request_service.update_draft(submitted_request.id, requester_id, {"amount": 2})

    def test_role_resolved_draft_is_claimed_on_edit(
        self, request_service, approval_engine, build_chain, requester_id, manager_id, finance_id, director_id
    ):
        chain = build_chain(
            [
                section_input(0, ["manager"], auto_trigger=True),
                section_input(1, ["director"], initiator_role_ids=["finance"]),
            ]
        )
        request = request_service.start_request(chain.id, 0, requester_id, submit=True)
        request = approval_engine.approve(request.id, manager_id)
        successor = approval_engine.find_successor(request)
        assert successor.initiator_id is None

        with pytest.raises(ForbiddenError):
            request_service.update_draft(successor.id, manager_id, {"account": "6100"})

        claimed = request_service.update_draft(successor.id, finance_id, {"account": "6100"})
        assert claimed.initiator_id == finance_id

        with pytest.raises(ForbiddenError):
            approval_engine.submit(successor.id, director_id)
        submitted = approval_engine.submit(successor.id, finance_id)
        assert submitted.status == RequestStatus.IN_REVIEW

    def test_role_resolved_draft_is_claimed_on_submit(
        self, request_service, approval_engine, build_chain, requester_id, manager_id, finance_id
    ):
        chain = build_chain(
            [
                section_input(0, ["manager"], auto_trigger=True),
                section_input(1, ["director"], initiator_role_ids=["finance"]),
            ]
        )
        request = request_service.start_request(chain.id, 0, requester_id, submit=True)
        request = approval_engine.approve(request.id, manager_id)
        successor = approval_engine.find_successor(request)

        submitted = approval_engine.submit(successor.id, finance_id, data={"account": "6100"})

        assert submitted.initiator_id == finance_id
        assert submitted.status == RequestStatus.IN_REVIEW


class TestInboxes:
    """Test the read-side queries"""

    def test_pending_approvals_follow_current_step(
        self, request_service, approval_engine, submitted_request, business_unit_id, manager_id, director_id, finance_id
    ):
        assert [r.id for r in request_service.list_pending_approvals(manager_id, business_unit_id)] == [
            submitted_request.id
        ]
        assert request_service.list_pending_approvals(director_id, business_unit_id) == []

        approval_engine.approve(submitted_request.id, manager_id)

        assert request_service.list_pending_approvals(manager_id, business_unit_id) == []
        assert [r.id for r in request_service.list_pending_approvals(director_id, business_unit_id)] == [
            submitted_request.id
        ]
        assert request_service.list_pending_approvals(finance_id, business_unit_id) == []

    def test_requests_for_initiator(
        self, request_service, approval_engine, two_step_chain, requester_id, manager_id
    ):
        draft = request_service.start_request(two_step_chain.id, 0, requester_id)
        submitted = request_service.start_request(two_step_chain.id, 0, requester_id, submit=True)

        mine = request_service.list_requests_for_initiator(requester_id)
        assert {r.id for r in mine} == {draft.id, submitted.id}

        drafts = request_service.list_requests_for_initiator(requester_id, status=RequestStatus.DRAFT)
        assert [r.id for r in drafts] == [draft.id]
        assert request_service.list_requests_for_initiator(manager_id) == []

    def test_unknown_request(self, request_service):
        with pytest.raises(NotFoundError):
            request_service.get_request(str(uuid4()))
        with pytest.raises(NotFoundError):
            request_service.get_request("42")
