from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError

from kindred.auth.models import User, AuthSession
from kindred.auth.schemas import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    MeResponse,
    RegisterRequest,
    SubscriptionStatusResponse,
    UpdatePreferencesRequest,
    UserResponse,
)
from kindred.core.deps import get_current_session, get_storage, require_auth
from kindred.core.log import get_logger
from kindred.core.security import hash_password, verify_password
from kindred.progress.achievements import grant_onboarding_complete
from kindred.storage import Storage, as_utc

router = APIRouter(prefix="/auth", tags=["auth"])

logger = get_logger(__name__, "AUTH")

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_TAKEN = "Email already registered"


# =========================
# REGISTER
# =========================
@router.post("/register", status_code=201, response_model=AuthResponse)
def register(payload: RegisterRequest, storage: Storage = Depends(get_storage)):
    try:
        if storage.get_user_by_email(payload.email):
            raise HTTPException(status_code=400, detail=EMAIL_TAKEN)

        password_hash = hash_password(payload.password)
        # user -> session -> free subscription, all or nothing
        with storage.atomic():
            user = storage.create_user(
                email=payload.email,
                password_hash=password_hash,
                display_name=payload.display_name,
                phone_number=payload.phone_number,
                preferred_language=payload.preferred_language,
            )
            session = storage.create_session(user.id)
            storage.create_subscription(user.id, "free")
    except HTTPException:
        raise
    except IntegrityError:
        # A concurrent registration took the email between the check and the insert
        logger.info("registration rejected: email taken during insert")
        raise HTTPException(status_code=400, detail=EMAIL_TAKEN)
    except Exception:
        logger.exception("Registration error")
        raise HTTPException(status_code=500, detail="Registration failed")

    logger.info(f"registered user={user.id}")
    return {"user": user, "token": session.token, "expires_at": session.expires_at}


# =========================
# LOGIN
# =========================
@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, storage: Storage = Depends(get_storage)):
    try:
        user = storage.get_user_by_email(payload.email)
        # Same message for unknown email and wrong password
        if not user or not verify_password(payload.password, user.password_hash):
            logger.info("login rejected: invalid credentials")
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

        # Earlier sessions stay valid; a user may be signed in on several devices
        session = storage.create_session(user.id)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Login error")
        raise HTTPException(status_code=500, detail="Login failed")

    logger.info(f"login successful user={user.id}")
    return {"user": user, "token": session.token, "expires_at": session.expires_at}


# =========================
# LOGOUT
# =========================
@router.post("/logout", response_model=LogoutResponse, response_model_exclude_none=True)
def logout(
    session: AuthSession = Depends(get_current_session),
    storage: Storage = Depends(get_storage),
):
    try:
        storage.delete_session(session.token)
    except Exception:
        logger.exception("Logout error")
        raise HTTPException(status_code=500, detail="Logout failed")
    return {"success": True}


@router.post("/logout-all", response_model=LogoutResponse)
def logout_everywhere(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    """Revoke every session of the current user, this one included."""
    try:
        revoked = storage.delete_user_sessions(user.id)
    except Exception:
        logger.exception("Logout-all error")
        raise HTTPException(status_code=500, detail="Logout failed")
    logger.info(f"revoked {revoked} session(s) for user={user.id}")
    return {"success": True, "revoked": revoked}


# =========================
# CURRENT USER
# =========================
@router.get("/me", response_model=MeResponse)
def get_me(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        subscription = storage.get_subscription(user.id)
    except Exception:
        logger.exception("Get user error")
        raise HTTPException(status_code=500, detail="Failed to get user")

    # A missing subscription row means the default free plan
    return {
        "user": user,
        "subscription": subscription or {"plan": "free", "status": "active"},
    }


@router.patch("/me", response_model=UserResponse)
def update_me(
    payload: UpdatePreferencesRequest,
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        updated = storage.update_user(user.id, **changes)
    except Exception:
        logger.exception("Update error")
        raise HTTPException(status_code=500, detail="Update failed")

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": updated}


@router.post("/complete-onboarding", response_model=UserResponse)
def complete_onboarding(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        with storage.atomic():
            updated = storage.update_user(user.id, onboarding_completed=True)
            if updated:
                grant_onboarding_complete(storage, user.id)
    except Exception:
        logger.exception("Onboarding error")
        raise HTTPException(status_code=500, detail="Failed to complete onboarding")

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": updated}


# =========================
# SUBSCRIPTION STATUS
# =========================
@router.get("/subscription", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    user: User = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    """Premium only counts while the plan is active and its period has not ended."""
    try:
        subscription = storage.get_subscription(user.id)
    except Exception:
        logger.exception("Get subscription error")
        raise HTTPException(status_code=500, detail="Failed to get subscription")

    if not subscription:
        return {"is_premium": False, "plan": "free", "status": "none"}

    period_end = subscription.current_period_end
    is_active = (
        subscription.status == "active"
        and period_end is not None
        and as_utc(period_end) > datetime.now(timezone.utc)
    )
    return {
        "is_premium": is_active and subscription.plan == "premium",
        "plan": subscription.plan,
        "status": subscription.status,
        "current_period_end": period_end,
    }
