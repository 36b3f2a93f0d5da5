import logging
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from . import models, settings as app_settings
from .database import get_db

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, app_settings.settings.secret_key, algorithm=app_settings.settings.algorithm)
    return encoded_jwt

def token_for_user(user: models.User, remember_me: bool = False) -> str:
    s = app_settings.settings
    minutes = s.remember_me_expire_minutes if remember_me else s.access_token_expire_minutes
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role},
        expires_delta=timedelta(minutes=minutes),
    )

def decode_user_id(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, app_settings.settings.secret_key, algorithms=[app_settings.settings.algorithm])
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        return None
    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        return None
    return int(sub)

def _resolve_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    # The Authorization header wins; the login cookie is the fallback
    if bearer:
        return bearer
    return request.cookies.get(app_settings.settings.auth_cookie_name)

async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme_optional), db: Session = Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized. Please login first.",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = _resolve_token(request, token)
    if not token:
        raise credentials_exception

    user_id = decode_user_id(token)
    if user_id is None:
        raise credentials_exception

    user = db.get(models.User, user_id)
    if user is None:
        raise credentials_exception
    if user.status != "active":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Account is {user.status}")
    return user

async def get_current_user_optional(request: Request, token: Optional[str] = Depends(oauth2_scheme_optional), db: Session = Depends(get_db)) -> Optional[models.User]:
    token = _resolve_token(request, token)
    if not token:
        return None
    user_id = decode_user_id(token)
    if user_id is None:
        return None
    user = db.get(models.User, user_id)
    if user is None or user.status != "active":
        return None
    return user

def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""
    async def checker(current_user: models.User = Depends(get_current_user)):
        if current_user.role not in roles:
            logger.warning(f"User {current_user.id} ({current_user.role}) denied, needs one of {roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden. You do not have permission to access this resource.",
            )
        return current_user
    return checker

get_current_staff = require_roles(*models.STAFF_ROLES)
get_current_super_admin = require_roles("super_admin")
