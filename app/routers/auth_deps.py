"""
Request identity dependencies.
Resolves the bearer token to a User and an Actor (user, role, company) and
provides role gates for endpoints.
"""
import logging
from typing import Callable, List

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.database import get_db
from app.models.user import User, UserRole
from app.services import directory
from app.services.access import Actor

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _claims(token: str) -> dict:
    payload = decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    payload = _claims(token)
    user_id = payload.get("user_id")
    if user_id is None:
        logger.warning("Authentication failed: Missing user_id in token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing subject in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        logger.warning(f"Authentication failed: User {user_id} not found in database")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        logger.warning(f"Authentication failed: User {user_id} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    return user


def get_current_actor(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Actor:
    """
    The token's company is the working company for the request. Anyone but a
    super admin must belong to it.
    """
    company_id = _claims(token).get("company_id")
    company_id = int(company_id) if company_id is not None else current_user.company_id

    if current_user.role != UserRole.SUPER_ADMIN:
        if company_id is None or not directory.is_member(db, current_user, company_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User does not belong to this company"
            )
    return Actor(user_id=current_user.id, role=current_user.role, company_id=company_id)


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks the actor has one of the allowed roles.

    Usage:
        @router.post("/settings/periods")
        def save_period(actor: Actor = Depends(require_role([UserRole.HR, UserRole.SUPER_ADMIN]))):
            ...
    """
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return actor
    return role_checker


def require_company(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.company_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Select a company for this request"
        )
    return actor


def require_hr():
    return require_role([UserRole.HR, UserRole.SUPER_ADMIN])


def require_manager():
    return require_role([UserRole.MANAGER, UserRole.HR])
