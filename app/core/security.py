from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)


def create_access_token(sub: str, extra: Optional[dict] = None, expires_delta: Optional[timedelta] = None) -> str:
    """
    sub: user id (string)
    extra: additional claims, merged over the standard ones
    """
    issued = datetime.now(timezone.utc)
    expires = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims: Dict[str, Any] = {"sub": str(sub), "iat": int(issued.timestamp()), "exp": int(expires.timestamp())}
    if extra:
        claims.update(extra)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for_user(user) -> str:
    # role/company are informational for clients; requests re-read the user row
    return create_access_token(sub=str(user.id), extra={"role": user.role, "company_id": user.company_id})


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
