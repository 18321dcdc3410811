"""
API Dependencies
Common dependencies for FastAPI endpoints: database sessions, the acting
user and the engine's collaborators
"""

from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from chainflow.core.config import settings
from chainflow.db.database import SessionLocal
from chainflow.models.base import normalize_id
from chainflow.services.approval_engine import ApprovalEngine
from chainflow.services.chain_service import ChainDefinitionService
from chainflow.services.form_validator import FormValidator, RequiredFieldsFormValidator
from chainflow.services.request_service import RequestService
from chainflow.services.role_provider import DatabaseRoleProvider, RoleProvider

# Security scheme for JWT token
security = HTTPBearer()

# Form requirements are registered by whoever embeds the service
form_validator = RequiredFieldsFormValidator()


def get_db() -> Generator:
    """
    Database dependency
    Creates and yields database session, ensures proper cleanup
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Acting user id from the bearer token's ``sub`` claim

    Tokens are issued by the identity provider; this service only verifies
    the signature and reads the subject.

    Raises:
        HTTPException: If the token is invalid or its subject is not a user id
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception

    actor_id = normalize_id(payload.get("sub"))
    if actor_id is None:
        raise credentials_exception
    return actor_id


def get_role_provider(db: Session = Depends(get_db)) -> RoleProvider:
    return DatabaseRoleProvider(db)


def get_form_validator() -> FormValidator:
    return form_validator


def get_approval_engine(
    db: Session = Depends(get_db),
    role_provider: RoleProvider = Depends(get_role_provider),
    validator: FormValidator = Depends(get_form_validator),
) -> ApprovalEngine:
    return ApprovalEngine(db, role_provider, validator)


def get_request_service(
    db: Session = Depends(get_db),
    role_provider: RoleProvider = Depends(get_role_provider),
    engine: ApprovalEngine = Depends(get_approval_engine),
) -> RequestService:
    return RequestService(db, role_provider, engine=engine)


def get_chain_service(
    db: Session = Depends(get_db),
    role_provider: RoleProvider = Depends(get_role_provider),
) -> ChainDefinitionService:
    return ChainDefinitionService(db, role_provider)
