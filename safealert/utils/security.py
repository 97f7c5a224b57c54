import logging

from jose import jwt, JWTError
from fastapi import HTTPException, Request, status, Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from safealert.config import Settings
from safealert.crud import crud
from safealert.database.database import get_db
from safealert.models.models import User

logger = logging.getLogger("security")


# ---------- Token Management ----------
# Tokens are issued by the identity service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def decode_access_token(token: str, settings: Settings) -> dict:
    """Decode a JWT access token. Raises 401 if invalid/expired."""
    if not settings.secret_key:
        logger.error("SECRET_KEY not configured, rejecting bearer token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Authentication required")
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid or expired access token")


# ---------- FastAPI Dependencies ----------
async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract the current user from an access token."""
    payload = decode_access_token(token, request.app.state.settings)
    email = payload.get("sub")

    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid token payload")

    user = await crud.get_user_by_email(db, email=email)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user
