import os
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import HTTPException, Request, status
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

load_dotenv()

# === Token Configuration ===
# Tokens are issued by the desktop shell's login screen and signed with a
# shared secret. The single-user desktop build may disable auth entirely.
AUTH_DISABLED = os.getenv("AUTH_DISABLED", "false").lower() in ("1", "true", "yes")
AUTH_SECRET_KEY = os.getenv("AUTH_SECRET_KEY", "")
AUTH_ALGORITHM = os.getenv("AUTH_ALGORITHM", "HS256")
AUTH_AUDIENCE = os.getenv("AUTH_AUDIENCE")

SYSTEM_USER = {"sub": "system", "username": "system"}


def get_current_user(request: Request) -> Dict[str, Any]:
    """
    FastAPI dependency to validate the JWT from the Authorization header.

    Usage:
        @router.post("/", dependencies=[Depends(get_current_user)])
    """
    if AUTH_DISABLED:
        return SYSTEM_USER

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is missing",
        )

    # The token is expected to be in the format "Bearer <token>"
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    token = parts[1]
    options = {"verify_aud": AUTH_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            AUTH_SECRET_KEY,
            algorithms=[AUTH_ALGORITHM],
            audience=AUTH_AUDIENCE,
            options=options,
        )
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except JWTClaimsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token claims: {e}"
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {e}"
        )


def get_user_identifier(user: Dict[str, Any]) -> str:
    """Best human-readable identifier for the acting user, falling back to 'system'."""
    if not user:
        return SYSTEM_USER["sub"]
    return user.get("username") or user.get("email") or user.get("sub") or SYSTEM_USER["sub"]
