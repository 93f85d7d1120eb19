import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from pilates_booking.core.identity import ROLES, Actor
from pilates_booking.core.logging_config import get_logger

logger = get_logger("security.jwt")

SECRET_KEY_ACCESS_TOKEN = os.getenv("SECRET_KEY_ACCESS_TOKEN", "super-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 15))


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    logger.debug("Access token expires at: %s", expire)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY_ACCESS_TOKEN, algorithm=ALGORITHM)


def verify_token(token: str):
    try:
        return jwt.decode(token, SECRET_KEY_ACCESS_TOKEN, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning("Error verifying access token: %s", e)
        return None


def actor_from_token(token: Optional[str]) -> Optional[Actor]:
    """Decode an access token into the acting user, None when missing or invalid"""
    if not token:
        return None
    payload = verify_token(token)
    if not payload:
        return None

    user_id = payload.get("user_id")
    if user_id is None:
        return None
    role = payload.get("role", "client")
    if role not in ROLES:
        logger.warning("Token for user %s carries unknown role %s", user_id, role)
        return None
    try:
        return Actor(user_id=int(user_id), role=role)
    except (TypeError, ValueError):
        return None
