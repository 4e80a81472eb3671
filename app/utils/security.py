# security.py
from datetime import datetime, timezone, timedelta
from typing import Optional
from fastapi import HTTPException, status
from jose import JWTError, ExpiredSignatureError, jwt
from app.config import settings

ALGO = "HS256"


def issue_token(client_id: str, scopes: list[str], tenant: Optional[str] = None) -> str:
    """
    Generate JWT for a client or testing.
    A token carrying a `tenant` claim is only accepted for that tenant.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": client_id,
        "scopes": scopes,
        "iat": now.timestamp(),
        "exp": (now + timedelta(hours=settings.jwt_exp_hours)).timestamp(),
    }
    if tenant:
        payload["tenant"] = tenant
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)


def verify_token(token: str) -> dict:
    """
    Verify JWT token and return decoded payload.
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
