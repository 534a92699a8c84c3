from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import settings
from db.database import get_db
from db.models import User

bearer_scheme = HTTPBearer(auto_error=False)

DEFAULT_COOKIE_NAME = "vitalplus_session"
_SAMESITE_VALUES = {"strict", "lax", "none"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user_by_email(db: Session, email: str) -> User | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    return db.query(User).filter(User.email == normalized).first()


# Passwords

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    return bool(hashed) and bcrypt.checkpw(password.encode(), hashed.encode())


# Tokens

def session_lifetime() -> timedelta:
    return timedelta(hours=max(int(settings.JWT_EXPIRY_HOURS), 1))


def create_token(user_id: int, token_version: int = 0, lifetime: timedelta | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "tv": int(token_version or 0),
        "iat": issued_at,
        "exp": issued_at + (lifetime or session_lifetime()),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")


# Session cookie

def cookie_name() -> str:
    return (settings.AUTH_COOKIE_NAME or "").strip() or DEFAULT_COOKIE_NAME


def _cookie_samesite() -> str:
    value = (settings.AUTH_COOKIE_SAMESITE or "lax").strip().lower()
    return value if value in _SAMESITE_VALUES else "lax"


def set_session_cookie(response: Response, token: str, lifetime: timedelta | None = None) -> None:
    max_age = int((lifetime or session_lifetime()).total_seconds())
    response.set_cookie(
        key=cookie_name(),
        value=token,
        httponly=bool(settings.AUTH_COOKIE_HTTPONLY),
        secure=bool(settings.AUTH_COOKIE_SECURE),
        samesite=_cookie_samesite(),  # type: ignore[arg-type]
        domain=settings.AUTH_COOKIE_DOMAIN,
        path=settings.AUTH_COOKIE_PATH or "/",
        max_age=max(max_age, 1),
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=cookie_name(),
        domain=settings.AUTH_COOKIE_DOMAIN,
        path=settings.AUTH_COOKIE_PATH or "/",
    )


def start_session(response: Response, user: User) -> str:
    """Issue a token for ``user`` and mirror it into the session cookie."""
    token = create_token(user.id, token_version=user.token_version)
    set_session_cookie(response, token)
    return token


def resolve_test_login_user(db: Session, email: str | None) -> User:
    """Look up the account behind a password-less test login.

    403 outside test environments, 400 without an email, 404 for unknown accounts.
    """
    if settings.is_production_like:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Nur in Testumgebungen verfügbar")
    if not normalize_email(email or ""):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="E-Mail fehlt")
    user = find_user_by_email(db, email or "")
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")
    return user


# Request authentication

def _resolve_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str:
    # Bearer header wins over the cookie.
    token = (credentials.credentials if credentials else None) or request.cookies.get(cookie_name())
    if not token:
        raise _unauthorized("Nicht authentifiziert")
    return token


def _user_from_claims(db: Session, claims: dict) -> User:
    try:
        user_id = int(claims.get("sub", 0))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token")
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    if int(claims.get("tv", 0)) != int(user.token_version or 0):
        raise _unauthorized("Session invalidated. Please sign in again.")
    return user


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    user = _user_from_claims(db, decode_token(_resolve_token(request, credentials)))
    request.state.user_id = user.id
    return user
