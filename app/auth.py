# app/auth.py

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlmodel import Session, select

from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from .db import get_session
from .models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def create_access_token(data: dict, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    claims = dict(data)
    claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def find_user(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email)).first()


def authenticate(session: Session, email: str, password: str) -> Optional[User]:
    """The user for these credentials, or None."""
    user = find_user(session, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        return None
    return user


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid token")

    email = payload.get("sub")
    if email is None:
        raise _unauthorized("Invalid token")

    user = find_user(session, email)
    if user is None:
        raise _unauthorized("User not found")
    if user.status == "rejected":
        raise HTTPException(status_code=403, detail="Account registration was rejected")

    # Handlers get a plain dict; status and assigned service drive access checks
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "assigned_service_id": user.assigned_service_id,
    }
