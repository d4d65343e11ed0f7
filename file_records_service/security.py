from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from pydantic import BaseModel

from config import Settings

BCRYPT_MAX_BYTES = 72
BCRYPT_ROUNDS = 12


class TokenPayload(BaseModel):
    sub: str
    kind: str = "user"
    exp: Optional[int] = None


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hashes a plain password."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies a plain password against a hashed one."""
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(
    subject: str, kind: str, settings: Settings, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Creates a signed, time-limited access token for an identity.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.now(timezone.utc)
    to_encode = {"sub": str(subject), "kind": kind, "iat": now, "exp": now + expires_delta}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> TokenPayload:
    """
    Decodes a token and returns its payload.

    Raises jwt.ExpiredSignatureError for expired tokens and jwt.PyJWTError
    (or pydantic's ValidationError) for anything else that is wrong with it.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    return TokenPayload(**payload)
