"""Bearer-token authentication resolving the caller principal."""
from __future__ import annotations

from typing import Any, Dict

import jwt
from fastapi import Depends, Header, HTTPException, status

from .secrets import get_secret


def require_token(authorization: str | None = Header(None)) -> Dict[str, Any]:
    """Validate a Bearer token (HS256 JWT or static per-principal token).

    Returns the claims; ``sub`` always carries the principal identifier.
    """

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized"
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    if token.count(".") == 2:
        secret = get_secret("JWT_SECRET")
        if not secret:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            )
        try:
            claims = jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.PyJWTError as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            ) from exc
        if not claims.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            )
        return claims

    tokens: Dict[str, str] = get_secret("API_TOKENS", {})
    for principal, expected in tokens.items():
        if token == expected:
            return {"sub": principal}
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def caller_principal(claims: Dict[str, Any] = Depends(require_token)) -> str:
    """FastAPI dependency yielding the authenticated principal id."""
    return str(claims["sub"])
