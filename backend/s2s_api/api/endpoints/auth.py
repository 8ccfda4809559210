"""
Authentication Endpoints
========================

Signup, login, token verification, profile and logout, plus the emailed
link flows: email verification and password reset.
"""

import re
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from s2s_api.api.deps import (
    get_account_mailer,
    get_client_ip,
    get_hasher,
    get_settings_dep,
    get_token_service,
)
from s2s_api.core.config import Settings
from s2s_api.core.database import get_db
from s2s_api.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
    handle_route_errors,
)
from s2s_api.core.metrics import auth_attempts_total
from s2s_api.core.security import PasswordHasher, SessionClaims, TokenService
from s2s_api.middleware.auth import require_session
from s2s_api.models.audit import AuditAction
from s2s_api.models.user import User
from s2s_api.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LoginUser,
    ProfileResponse,
    ProfileResponseBody,
    ProfileUpdateRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    UserResponse,
    UserSummary,
    VerifyResponse,
)
from s2s_api.schemas.base import MessageResponse
from s2s_api.services.account_mailer import KIND_PASSWORD_RESET, KIND_VERIFICATION, AccountMailer
from s2s_api.services.audit_service import AuditService
from s2s_api.services.user_service import UserService, normalize_email


router = APIRouter()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INVALID_CREDENTIALS = "Invalid email or password"
RESET_REQUESTED = "If an account exists with this email, you will receive a password reset link."


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        organization=user.organization,
        roles=user.role_names,
        is_active=user.is_active,
        email_verified=user.email_verified,
        created_at=user.created_at,
    )


async def _current_user(db: AsyncSession, hasher: PasswordHasher, claims: SessionClaims) -> User:
    user = await UserService(db, hasher).get_by_id(claims.user_id)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", "User not found")
    return user


def _check_password_length(password: str, settings: Settings) -> None:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            "WEAK_PASSWORD",
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )
    if len(password) > settings.PASSWORD_MAX_LENGTH:
        raise ValidationError(
            "VALIDATION_ERROR",
            f"Password must be at most {settings.PASSWORD_MAX_LENGTH} characters",
        )


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
@handle_route_errors("SIGNUP_ERROR", "Failed to create account")
async def signup(
    body: SignupRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings_dep),
    mailer: AccountMailer = Depends(get_account_mailer),
):
    if not body.email or not body.password:
        raise ValidationError("VALIDATION_ERROR", "Email and password are required")

    email = normalize_email(body.email)
    if not EMAIL_RE.match(email):
        raise ValidationError("INVALID_EMAIL", "Invalid email format")
    _check_password_length(body.password, settings)

    users = UserService(db, hasher)
    user = await users.create_user(
        email=email,
        password=body.password,
        full_name=body.full_name,
        organization=body.organization,
    )
    verification_token = await users.issue_verification_token(
        user, timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_HOURS)
    )
    await AuditService(db).log_event(
        AuditAction.SIGNUP,
        user_id=user.id,
        details={"email": email},
        ip_address=get_client_ip(request),
    )
    await db.commit()
    await mailer.send(KIND_VERIFICATION, email=user.email, token=verification_token, user_name=user.full_name)

    return SignupResponse(
        message="Account created successfully",
        user=UserSummary(id=user.id, email=user.email, full_name=user.full_name),
    )


@router.post("/login", response_model=LoginResponse)
@handle_route_errors("LOGIN_ERROR", "Login failed")
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings_dep),
):
    if not body.email or not body.password:
        raise ValidationError("VALIDATION_ERROR", "Email and password are required")

    email = normalize_email(body.email)
    ip_address = get_client_ip(request)
    users = UserService(db, hasher)
    audit = AuditService(db)

    user = await users.get_by_email(email)
    if user is None:
        await hasher.burn(body.password)
        await audit.log_login_failure(email, "User not found", ip_address=ip_address)
        await db.commit()
        auth_attempts_total.labels(method="password", outcome="failure").inc()
        raise AuthenticationError("INVALID_CREDENTIALS", INVALID_CREDENTIALS)

    if not await users.check_password(user, body.password):
        await audit.log_login_failure(email, "Invalid password", user_id=user.id, ip_address=ip_address)
        await db.commit()
        auth_attempts_total.labels(method="password", outcome="failure").inc()
        raise AuthenticationError("INVALID_CREDENTIALS", INVALID_CREDENTIALS)

    if not user.is_active:
        await audit.log_login_failure(email, "Account inactive", user_id=user.id, ip_address=ip_address)
        await db.commit()
        auth_attempts_total.labels(method="password", outcome="inactive").inc()
        raise AuthorizationError("ACCOUNT_INACTIVE", "Account is inactive. Contact support.")

    if settings.REQUIRE_EMAIL_VERIFICATION and not user.email_verified:
        await audit.log_login_failure(email, "Email not verified", user_id=user.id, ip_address=ip_address)
        await db.commit()
        auth_attempts_total.labels(method="password", outcome="unverified").inc()
        raise AuthorizationError(
            "EMAIL_NOT_VERIFIED",
            "Please verify your email address before logging in. Check your inbox for a verification link.",
        )

    token = tokens.issue(user.id, user.email, user.full_name)
    await users.record_login(user)
    await audit.log_event(AuditAction.LOGIN_SUCCESS, user_id=user.id, ip_address=ip_address)
    await db.commit()
    auth_attempts_total.labels(method="password", outcome="success").inc()

    return LoginResponse(
        message="Login successful",
        token=token,
        expires_in=int(tokens.lifetime.total_seconds()),
        user=LoginUser(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            organization=user.organization,
            roles=user.role_names,
        ),
    )


@router.get("/verify", response_model=VerifyResponse)
@handle_route_errors("VERIFY_ERROR", "Token verification failed")
async def verify(
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    user = await _current_user(db, hasher, claims)
    return VerifyResponse(user=_user_response(user))


@router.post("/logout", response_model=MessageResponse)
@handle_route_errors("LOGOUT_ERROR", "Logout failed")
async def logout(
    request: Request,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    # Tokens are not revocable server-side; the client discards it.
    await AuditService(db).log_event(
        AuditAction.LOGOUT,
        user_id=claims.user_id,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="Logged out successfully")


@router.get("/profile", response_model=ProfileResponse)
@handle_route_errors("PROFILE_ERROR", "Failed to load profile")
async def get_profile(
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    users = UserService(db, hasher)
    user = await _current_user(db, hasher, claims)
    active_keys = await users.count_active_keys(user.id)

    return ProfileResponse(
        profile=ProfileResponseBody(
            **_user_response(user).model_dump(),
            last_login_at=user.last_login_at,
            active_api_keys=active_keys,
        )
    )


@router.put("/profile", response_model=MessageResponse)
@handle_route_errors("UPDATE_ERROR", "Failed to update profile")
async def update_profile(
    body: ProfileUpdateRequest,
    request: Request,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    changes = body.model_dump(include=body.model_fields_set)
    if not changes:
        raise ValidationError("NO_UPDATES", "No valid fields to update")

    user = await _current_user(db, hasher, claims)
    await UserService(db, hasher).update_profile(user, changes)
    await AuditService(db).log_event(
        AuditAction.PROFILE_UPDATE,
        user_id=user.id,
        details=changes,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="Profile updated successfully")


@router.get("/verify-email", response_model=MessageResponse)
@handle_route_errors("VERIFICATION_ERROR", "Failed to verify email")
async def verify_email(
    request: Request,
    token: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    if not token:
        raise ValidationError("MISSING_TOKEN", "Verification token is required")

    user = await UserService(db, hasher).verify_email(token)
    await AuditService(db).log_event(
        AuditAction.EMAIL_VERIFIED,
        user_id=user.id,
        details={"email": user.email},
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="Email verified successfully! You can now log in.")


@router.post("/resend-verification", response_model=MessageResponse)
@handle_route_errors("RESEND_ERROR", "Failed to resend verification email")
async def resend_verification(
    body: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings_dep),
    mailer: AccountMailer = Depends(get_account_mailer),
):
    if not body.email:
        raise ValidationError("VALIDATION_ERROR", "Email is required")

    users = UserService(db, hasher)
    user = await users.get_by_email(body.email)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", "No account found with this email")
    if user.email_verified:
        raise ValidationError("ALREADY_VERIFIED", "Email is already verified")

    token = await users.issue_verification_token(user, timedelta(hours=settings.EMAIL_VERIFICATION_TOKEN_HOURS))
    await db.commit()
    await mailer.send(
        KIND_VERIFICATION,
        email=user.email,
        token=token,
        user_name=user.full_name,
        base_url=body.base_url,
    )
    return MessageResponse(message="Verification email sent! Please check your inbox.")


@router.post("/forgot-password", response_model=MessageResponse)
@handle_route_errors("FORGOT_PASSWORD_ERROR", "Failed to process password reset request")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings_dep),
    mailer: AccountMailer = Depends(get_account_mailer),
):
    """Same answer whether or not the account exists."""
    if not body.email:
        raise ValidationError("VALIDATION_ERROR", "Email is required")

    users = UserService(db, hasher)
    user = await users.get_by_email(body.email)
    if user is None or not user.is_active:
        return MessageResponse(message=RESET_REQUESTED)

    token = await users.issue_reset_token(user, timedelta(hours=settings.PASSWORD_RESET_TOKEN_HOURS))
    await AuditService(db).log_event(
        AuditAction.PASSWORD_RESET_REQUEST,
        user_id=user.id,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    await mailer.send(
        KIND_PASSWORD_RESET,
        email=user.email,
        token=token,
        user_name=user.full_name,
        base_url=body.base_url,
    )
    return MessageResponse(message=RESET_REQUESTED)


@router.post("/reset-password", response_model=MessageResponse)
@handle_route_errors("RESET_PASSWORD_ERROR", "Failed to reset password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    settings: Settings = Depends(get_settings_dep),
):
    if not body.token or not body.password:
        raise ValidationError("VALIDATION_ERROR", "Token and new password are required")
    _check_password_length(body.password, settings)

    user = await UserService(db, hasher).reset_password(body.token, body.password)
    await AuditService(db).log_event(
        AuditAction.PASSWORD_RESET_COMPLETE,
        user_id=user.id,
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="Password reset successfully! You can now log in with your new password.")
