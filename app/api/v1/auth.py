# app/api/v1/auth.py
"""
Registration and login.

- Passwords are stored as bcrypt hashes and verified on login.
- Login returns a bearer token ``{"token": ...}`` valid for ACCESS_TOKEN_EXPIRE_DAYS.
- Registration failures (duplicate e-mail, invalid body) are 400s.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.dependencies import get_client_info
from app.core.exceptions import AuthenticationError, BadRequestError
from app.core.logging import audit_logger
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.user import User
from app.schemas.user import TokenResponse, UserCreate, UserLogin, UserResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalars().first()


@router.post("/register", response_model=UserResponse)
async def register(user_data: UserCreate, request: Request, db: AsyncSession = Depends(get_db)):
    client_info = get_client_info(request)

    if await _get_user_by_email(db, user_data.email):
        audit_logger.log_auth_failure(
            username=user_data.email,
            ip_address=client_info["ip_address"],
            reason="User already exists",
        )
        raise BadRequestError("User with this email already exists", "USER_EXISTS")

    user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        plan=user_data.plan,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        # concurrent registration with the same e-mail
        await db.rollback()
        raise BadRequestError("User with this email already exists", "USER_EXISTS") from e
    await db.refresh(user)

    audit_logger.log_data_change(
        user_id=user.id,
        action="create",
        resource_type="user",
        resource_id=user.id,
        changes={"email": user.email, "plan": user.plan},
    )
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse)
async def login(login_data: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    client_info = get_client_info(request)
    user = await _get_user_by_email(db, login_data.email)

    if not user or not verify_password(login_data.password, user.hashed_password):
        audit_logger.log_auth_failure(
            username=login_data.email,
            ip_address=client_info["ip_address"],
            reason="Invalid credentials",
        )
        raise AuthenticationError("Invalid email or password", "INVALID_CREDENTIALS")

    audit_logger.log_auth_success(
        user_id=user.id,
        ip_address=client_info["ip_address"],
        user_agent=client_info["user_agent"],
    )
    return TokenResponse(token=create_access_token(user.id))
