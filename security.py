"""
Credentials and tokens.

Access tokens are short-lived HS256 JWTs carrying the user's id, email, name
and role. Refresh tokens are random strings stored in ``refresh_tokens`` so
they can be rotated on use and revoked on logout or password change.
"""

import base64
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

import config
from database import get_db
from errors import AuthFailure
from logger import get_logger
from models import RefreshToken, User, as_utc, utcnow
from schemas import TokenPair

_logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))


def authenticate(db: Session, email: str, password: str) -> User:
    """Return the user for a valid email/password pair.

    Unknown email and wrong password produce the same message.
    """
    user = find_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthFailure("Invalid email or password")
    if not user.is_active:
        raise AuthFailure("Account is deactivated")
    return user


# Access tokens

def create_access_token(user: User, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRY_MINUTES)
    payload = {
        "sub": str(user.id),
        "userId": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role_enum.value,
        "iss": config.JWT_ISSUER,
        "aud": config.JWT_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG), expires_at


def decode_access_token(token: str) -> dict:
    """Verify signature, issuer, audience and expiry; raise JWTError otherwise."""
    return jwt.decode(
        token,
        config.JWT_SECRET,
        algorithms=[config.JWT_ALG],
        audience=config.JWT_AUDIENCE,
        issuer=config.JWT_ISSUER,
        options={"leeway": 0},
    )


def validate_access_token(token: str) -> Optional[int]:
    try:
        claims = decode_access_token(token)
    except JWTError:
        return None
    try:
        return int(claims.get("userId") or claims.get("sub"))
    except (TypeError, ValueError):
        return None


# Refresh tokens

def _new_refresh_token() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def issue_tokens(db: Session, user: User) -> TokenPair:
    """Create an access token and a stored refresh token. Caller commits."""
    access_token, expires_at = create_access_token(user)
    refresh = RefreshToken(
        token=_new_refresh_token(),
        user_id=user.id,
        expires_at=utcnow() + timedelta(days=config.REFRESH_TOKEN_EXPIRY_DAYS),
    )
    db.add(refresh)
    db.flush()
    return TokenPair(access_token=access_token, refresh_token=refresh.token, expires_at=expires_at)


def rotate_refresh_token(db: Session, token: str) -> Tuple[User, TokenPair]:
    """Exchange a live refresh token for a new token pair; the old one is revoked."""
    stored = db.scalar(select(RefreshToken).where(RefreshToken.token == token))
    now = utcnow()
    if stored is None or stored.revoked_at is not None or as_utc(stored.expires_at) <= now:
        raise AuthFailure("Invalid refresh token")
    user = db.get(User, stored.user_id)
    if user is None or not user.is_active:
        raise AuthFailure("User not found or inactive")
    stored.revoked_at = now
    tokens = issue_tokens(db, user)
    db.commit()
    return user, tokens


def revoke_refresh_tokens(db: Session, user: User, token: Optional[str] = None) -> int:
    """Revoke one of the user's refresh tokens, or all live ones. Caller commits."""
    stmt = update(RefreshToken).where(
        RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None)
    )
    if token:
        stmt = stmt.where(RefreshToken.token == token)
    result = db.execute(stmt.values(revoked_at=utcnow()))
    return result.rowcount or 0


# Auth dependencies

def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    token = _bearer_token(authorization)
    user_id = validate_access_token(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def get_optional_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous callers (no header) get None."""
    if not authorization:
        return None
    return get_current_user(authorization, db)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user
