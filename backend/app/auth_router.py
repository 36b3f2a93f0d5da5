import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from . import auth, models, schemas
from .database import get_db
from .cache import invalidate_content_caches
from .settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

def _set_auth_cookie(response: Response, token: str, remember_me: bool):
    minutes = settings.remember_me_expire_minutes if remember_me else settings.access_token_expire_minutes
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )

@router.post("/register", status_code=201)
def register(user_in: schemas.RegisterRequest, db: Session = Depends(get_db)):
    email = user_in.email.lower()
    if db.query(models.User).filter(func.lower(models.User.email) == email).first():
        raise HTTPException(status_code=400, detail="Email already exists")
    if db.query(models.User).filter(models.User.username == user_in.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")

    new_user = models.User(
        email=email,
        username=user_in.username,
        hashed_password=auth.get_password_hash(user_in.password),
        full_name=user_in.full_name,
        phone=user_in.phone,
        company=user_in.company,
        job_title=user_in.job_title,
        city=user_in.city,
        newsletter_subscribed=user_in.newsletter_subscribed,
        role="user",
        status="active",
        # No verification mail is sent yet, accounts are usable immediately
        email_verified=True,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    invalidate_content_caches()
    logger.info(f"Registered user {new_user.id} ({new_user.email})")
    return {
        "success": True,
        "message": "Registration successful",
        "user": schemas.UserOut.model_validate(new_user),
    }

@router.post("/login")
def login(payload: schemas.LoginRequest, response: Response, db: Session = Depends(get_db)):
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = db.query(models.User).filter(
        func.lower(models.User.email) == payload.email.strip().lower(),
        models.User.status == "active",
    ).first()
    if not user or not auth.verify_password(payload.password, user.hashed_password):
        logger.warning(f"Failed login for {payload.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_login_at = datetime.utcnow()
    user.login_count = (user.login_count or 0) + 1
    db.commit()
    db.refresh(user)

    token = auth.token_for_user(user, remember_me=payload.remember_me)
    _set_auth_cookie(response, token, payload.remember_me)
    logger.info(f"User {user.id} logged in")
    return {
        "success": True,
        "token": token,
        "token_type": "bearer",
        "user": schemas.UserOut.model_validate(user),
    }

@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name, path="/", httponly=True, samesite="lax")
    return {"success": True, "message": "Logged out"}

@router.get("/me")
async def read_users_me(current_user: models.User = Depends(auth.get_current_user)):
    return {
        "success": True,
        "authenticated": True,
        "user": schemas.UserOut.model_validate(current_user),
    }

@router.put("/me")
def update_users_me(
    payload: schemas.MeUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return {
        "success": True,
        "message": "Profile updated",
        "user": schemas.UserOut.model_validate(current_user),
    }
