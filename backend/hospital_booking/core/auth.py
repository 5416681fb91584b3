from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from hospital_booking.config.settings import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return payload
    except JWTError as e:
        raise e


def create_token_for_caller(user_id: int, role: str) -> str:
    """Issue a token carrying the caller identity the booking routes expect."""
    return create_access_token({"sub": str(user_id), "role": role})
