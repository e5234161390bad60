"""
Auth routes: registration, email OTP verification, login, current user.

Flow:
  1. POST /auth/register     user stored unverified, OTP mailed
  2. POST /auth/verify-otp   OTP consumed once → verified, bearer token issued
  3. POST /auth/login        verified users get a token; unverified users
                             get a fresh OTP and ``requireOTP: true``
  4. GET  /auth/me           profile of the token's user
"""
import logging

from fastapi import APIRouter, Depends

from .auth import CurrentUser, get_current_user
from .config import Settings
from .dependencies import get_mailer, get_settings, get_store
from .email_util import Mailer, send_otp_email
from .errors import (
    AuthError,
    ConflictError,
    DuplicateEmailError,
    ForbiddenError,
    NotFoundError,
    ServerError,
)
from .schemas import LoginRequest, RegisterRequest, VerifyOtpRequest, user_out
from .security import (
    UserRole,
    create_access_token,
    generate_otp,
    generate_otp_expiry,
    hash_password,
    utcnow,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


async def _mail_otp(mailer: Mailer, settings: Settings, email: str, otp: str, purpose: str):
    try:
        await send_otp_email(mailer, email, otp, purpose=purpose,
                             expiry_minutes=settings.otp_expiry_minutes)
    except Exception as e:
        # The user row is kept; a later login re-issues the OTP.
        raise ServerError("Could not send verification email") from e


@router.post("/register", status_code=201)
async def register(data: RegisterRequest,
                   store=Depends(get_store),
                   mailer: Mailer = Depends(get_mailer),
                   settings: Settings = Depends(get_settings)):
    if data.role is UserRole.ADMIN and not settings.allow_admin_registration:
        raise ForbiddenError("Admin registration is disabled")

    if await store.get_user_by_email(data.email):
        raise ConflictError("User already exists")

    otp = generate_otp()
    try:
        user = await store.create_user(
            email=data.email,
            password_hash=hash_password(data.password),
            name=data.name,
            role=data.role.value,
            otp=otp,
            otp_expires_at=generate_otp_expiry(settings.otp_expiry_minutes),
        )
    except DuplicateEmailError:
        raise ConflictError("User already exists")

    logger.info(f"User registered: id={user.id} role={user.role}")
    await _mail_otp(mailer, settings, user.email, otp, "Account Verification")

    return {
        "message": "User registered successfully. Please verify your email with OTP.",
        "userId": user.id,
    }


@router.post("/verify-otp")
async def verify_otp(data: VerifyOtpRequest,
                     store=Depends(get_store),
                     settings: Settings = Depends(get_settings)):
    if await store.get_user(data.user_id) is None:
        raise NotFoundError("User not found")

    user = await store.consume_otp(data.user_id, data.otp.strip(), utcnow())
    if user is None:
        raise AuthError("Invalid or expired OTP")

    logger.info(f"Email verified: user={user.id}")
    return {
        "message": "Email verified successfully",
        "token": create_access_token(user.id, user.role, settings),
        "user": user_out(user),
    }


@router.post("/login")
async def login(data: LoginRequest,
                store=Depends(get_store),
                mailer: Mailer = Depends(get_mailer),
                settings: Settings = Depends(get_settings)):
    user = await store.get_user_by_email(data.email)
    if not user or not verify_password(data.password, user.password_hash):
        raise AuthError("Invalid credentials")

    if not user.is_verified:
        otp = generate_otp()
        await store.set_otp(user.id, otp, generate_otp_expiry(settings.otp_expiry_minutes))
        await _mail_otp(mailer, settings, user.email, otp, "Login Verification")
        return {
            "message": "Please verify your email with OTP sent to your email",
            "userId": user.id,
            "requireOTP": True,
        }

    return {
        "message": "Login successful",
        "token": create_access_token(user.id, user.role, settings),
        "user": user_out(user),
    }


@router.get("/me")
async def me(current: CurrentUser = Depends(get_current_user), store=Depends(get_store)):
    user = await store.get_user(current.id)
    if user is None:
        raise NotFoundError("User not found")
    return user_out(user)
