"""
Pytest configuration and fixtures for the Chainflow approval API tests
"""

import os
from typing import Generator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt

# Set test environment variable before any imports
os.environ["TESTING"] = "true"

from chainflow.api.deps import get_db, get_form_validator, get_role_provider
from chainflow.core.config import settings
from chainflow.db.database import Base, SessionLocal, engine
from chainflow.main import app
from chainflow.schemas.workflow import WorkflowChainCreate, WorkflowSectionInput
from chainflow.services.approval_engine import ApprovalEngine
from chainflow.services.chain_service import ChainDefinitionService
from chainflow.services.form_validator import RequiredFieldsFormValidator
from chainflow.services.request_service import RequestService
from chainflow.services.role_provider import InMemoryRoleProvider

import chainflow.models  # noqa: F401,E402

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)


@pytest.fixture(scope="function", autouse=True)
def db_session():
    """Create a fresh database session for each test"""
    db = SessionLocal()

    try:
        yield db
    finally:
        # Clean up: delete all data, children before parents
        db.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        db.close()


@pytest.fixture
def other_session():
    """A second, independent session for interleaving concurrent callers"""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def business_unit_id():
    return str(uuid4())


@pytest.fixture
def requester_id():
    return str(uuid4())


@pytest.fixture
def manager_id():
    return str(uuid4())


@pytest.fixture
def director_id():
    return str(uuid4())


@pytest.fixture
def finance_id():
    return str(uuid4())


@pytest.fixture
def outsider_id():
    """A user with no roles in the business unit"""
    return str(uuid4())


@pytest.fixture
def role_provider(business_unit_id, requester_id, manager_id, director_id, finance_id):
    return InMemoryRoleProvider(
        [
            (requester_id, business_unit_id, "requester"),
            (manager_id, business_unit_id, "manager"),
            (director_id, business_unit_id, "director"),
            (finance_id, business_unit_id, "finance"),
        ]
    )


@pytest.fixture
def form_validator():
    return RequiredFieldsFormValidator()


@pytest.fixture
def approval_engine(db_session, role_provider, form_validator):
    return ApprovalEngine(
        db_session, role_provider, form_validator, clarifications_block_next_section=False
    )


@pytest.fixture
def request_service(db_session, role_provider, approval_engine):
    return RequestService(db_session, role_provider, engine=approval_engine)


@pytest.fixture
def chain_service(db_session, role_provider):
    return ChainDefinitionService(db_session, role_provider)


def section_input(order, steps, **overrides) -> WorkflowSectionInput:
    """Section definition with sensible defaults for tests"""
    values = {
        "order": order,
        "name": f"Section {order}",
        "initiator_role_ids": ["requester"],
        "steps": steps,
    }
    values.update(overrides)
    return WorkflowSectionInput(**values)


@pytest.fixture
def build_chain(chain_service, business_unit_id, manager_id):
    """Factory creating (and by default activating) a chain from section inputs"""

    def _build(sections, name="Purchase approval", activate=True):
        chain = chain_service.create_chain(
            WorkflowChainCreate(
                business_unit_id=business_unit_id, name=name, sections=sections
            ),
            actor_id=manager_id,
        )
        if activate:
            chain = chain_service.activate_chain(chain.id, actor_id=manager_id)
        return chain

    return _build


@pytest.fixture
def two_step_chain(build_chain):
    """One section approved by a manager, then a director"""
    return build_chain([section_input(0, ["manager", "director"])])


@pytest.fixture
def handover_chain(build_chain):
    """
    Two sections; the director who approves section 0 starts section 1

    Section 0 auto-triggers section 1, which finance approves.
    """
    return build_chain(
        [
            section_input(0, ["manager", "director"], auto_trigger=True),
            section_input(
                1,
                ["finance"],
                name="Payment",
                initiator_type="last_approver",
                initiator_role_ids=[],
            ),
        ]
    )


@pytest.fixture
def submitted_request(request_service, two_step_chain, requester_id):
    """A section-0 request waiting on its manager step"""
    return request_service.start_request(
        two_step_chain.id, 0, requester_id, data={"amount": 120}, submit=True
    )


@pytest.fixture
def client(role_provider, form_validator) -> Generator:
    """Create a test client with the engine collaborators overridden"""

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_role_provider] = lambda: role_provider
    app.dependency_overrides[get_form_validator] = lambda: form_validator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for any user id"""

    def _headers(user_id):
        token = jwt.encode(
            {"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
