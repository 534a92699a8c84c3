import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from auth.models import (
    LoginRequest,
    RegisterRequest,
    TestLoginRequest,
    TokenResponse,
    UserResponse,
)
from auth.utils import (
    clear_session_cookie,
    find_user_by_email,
    get_current_user,
    hash_password,
    normalize_email,
    resolve_test_login_user,
    start_session,
    verify_password,
)
from config import settings
from db.database import get_db
from db.models import User
from services.rate_limit_service import RateLimitRule, enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    email = normalize_email(req.email)
    if find_user_by_email(db, email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-Mail ist bereits registriert")

    user = User(
        email=email,
        name=" ".join(req.name.strip().split()),
        password_hash=hash_password(req.password),
        token_version=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id}")
    return TokenResponse(access_token=start_session(response, user))


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    email = normalize_email(req.email)
    allowed, retry_after = enforce_rate_limit(
        rule=RateLimitRule(
            endpoint="/api/auth/login",
            limit=settings.RATE_LIMIT_AUTH_LOGIN_ATTEMPTS,
            window_seconds=settings.RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS,
        ),
        scope_key=f"{_client_ip(request)}:{email}",
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Zu viele Anmeldeversuche. Bitte später erneut versuchen.",
            headers={"Retry-After": str(retry_after)},
        )
    user = find_user_by_email(db, email)
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Ungültige Anmeldedaten")
    return TokenResponse(access_token=start_session(response, user))


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"status": "ok"}


@router.post("/test-login")
def test_login(req: TestLoginRequest, response: Response, db: Session = Depends(get_db)):
    """Password-less login for end-to-end tests. Disabled in production-like environments."""
    user = resolve_test_login_user(db, req.email)
    start_session(response, user)
    logger.warning(f"Test login used for user {user.id}")
    return {
        "success": True,
        "user": {"id": user.id, "email": user.email, "name": user.name},
    }
