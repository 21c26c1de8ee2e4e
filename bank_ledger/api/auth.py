"""
Authentication and authorization dependencies
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import LedgerConfig
from ..system import LedgerSystem


security = HTTPBearer(auto_error=False)


def get_ledger_system(request: Request) -> LedgerSystem:
    """Dependency returning the ledger system bound to the application"""
    return request.app.state.ledger_system


def create_access_token(user_id: int, config: LedgerConfig) -> Tuple[str, datetime]:
    """Issue a signed token whose subject is the user id"""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=config.jwt_expiry_hours)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expires_at
    }
    token = jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)
    return token, expires_at


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LedgerSystem = Depends(get_ledger_system)
) -> int:
    """Dependency that validates the bearer token and returns the caller's user id"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
