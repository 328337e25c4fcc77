"""
Authentication API endpoints.

Member self-registration, login, profile and logout. Koperasi staff
(ADMIN) accounts are provisioned out of band and cannot be registered here.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.koperasi import Koperasi
from backend.app.models.enums import UserRole
from backend.app.schemas.auth import UserRegister, UserLogin, TokenResponse, UserResponse
from backend.app.schemas.common import StatusMessage
from backend.app.core.security import get_password_hash, verify_password
from backend.app.core.jwt import create_access_token
from backend.app.core.dependencies import get_current_user
from backend.app.core.token_revocation import revoke_token
from backend.app.services.audit import log_auth_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(user: User) -> TokenResponse:
    jwt_payload = {
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "tenant_id": user.tenant_id
    }

    return TokenResponse(
        access_token=create_access_token(data=jwt_payload),
        token_type="bearer",
        user_id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        tenant_id=user.tenant_id
    )


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new member.

    - The role is always MEMBER.
    - Username and email must be unused.
    - ``tenant_id``, when given, must name an active koperasi.
    """
    result = await db.execute(
        select(User).where(
            or_(User.username == user_data.username, User.email == user_data.email)
        )
    )
    existing_user = result.scalar_one_or_none()

    if existing_user:
        if existing_user.username == user_data.username:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username already registered"
            )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    if user_data.tenant_id is not None:
        koperasi = await db.get(Koperasi, user_data.tenant_id)
        if not koperasi or not koperasi.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Koperasi not found"
            )

    new_user = User(
        email=user_data.email,
        username=user_data.username,
        full_name=user_data.full_name,
        phone=user_data.phone,
        tenant_id=user_data.tenant_id,
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.MEMBER,
        is_active=True
    )

    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    await log_auth_event(
        db=db,
        action=AuditAction.USER_CREATED,
        user_id=new_user.id,
        username=new_user.username,
        ip_address=_client_ip(request),
        metadata={"tenant_id": new_user.tenant_id}
    )

    return _token_response(new_user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Accepts username or email. Failed attempts are written to the audit log.
    """
    result = await db.execute(
        select(User).where(
            or_(User.username == credentials.username, User.email == credentials.username)
        )
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            username=user.username if user else credentials.username,
            ip_address=_client_ip(request),
            metadata={"reason": "Invalid password" if user else "User not found"}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            username=user.username,
            ip_address=_client_ip(request),
            metadata={"reason": "Account is inactive"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        username=user.username,
        ip_address=_client_ip(request)
    )

    return _token_response(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Profile of the authenticated user."""
    user = await db.get(User, current_user["user_id"])
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserResponse.model_validate(user)


@router.post("/logout", response_model=StatusMessage)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the bearer token used for this request."""
    revoked = await revoke_token(current_user["token"], current_user["user_id"])
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not revoke token, try again later"
        )

    await log_auth_event(
        db=db,
        action=AuditAction.TOKEN_REVOKED,
        user_id=current_user["user_id"],
        username=current_user.get("sub"),
        ip_address=_client_ip(request)
    )

    return StatusMessage(message="Logged out")
