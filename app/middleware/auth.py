from fastapi import Header, HTTPException
from typing import Optional
import uuid
import jwt
from app.config import get_settings
from app.utils.logger import logger


def _user_id_from_jwt(authorization: str, secret: str) -> str:
    """Validate a Supabase access token (HS256) and return its subject."""
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        payload = jwt.decode(
            parts[1],
            secret,
            algorithms=['HS256'],
            audience='authenticated',
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired", headers={"WWW-Authenticate": "Bearer"})
    except jwt.InvalidTokenError as e:
        logger.warning(f"[Auth] Invalid Supabase token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token", headers={"WWW-Authenticate": "Bearer"})

    user_id = payload.get('sub')
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return user_id


async def get_user_id(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> str:
    """
    Resolve the Supabase user ID for the request (cache rows are keyed on it)

    With SUPABASE_JWT_SECRET configured the Authorization Bearer token is
    required and verified. Without it (local dev, tests) the X-User-ID
    header is trusted but must be a UUID, the shape of Supabase auth IDs.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user_id: str = Depends(get_user_id)):
            ...
    """
    secret = get_settings().supabase_jwt_secret
    if secret:
        if not authorization:
            raise HTTPException(
                status_code=401,
                detail="Authorization header required",
                headers={"WWW-Authenticate": "Bearer"}
            )
        return _user_id_from_jwt(authorization, secret)

    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="User ID required. Please sign in again."
        )

    try:
        uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Invalid user ID format"
        )

    return x_user_id
