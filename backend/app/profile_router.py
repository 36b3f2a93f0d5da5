import logging
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy import func
from sqlalchemy.orm import Session
from . import auth, models, schemas, storage
from .database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["profile"])

MIN_PASSWORD_LENGTH = 8

def _change_password(user: models.User, current_password: str | None, new_password: str):
    if not current_password:
        raise HTTPException(status_code=400, detail="Current password is required")
    if not auth.verify_password(current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"New password must be at least {MIN_PASSWORD_LENGTH} characters")
    user.hashed_password = auth.get_password_hash(new_password)

@router.put("/profile")
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    email = payload.email.lower()
    taken = db.query(models.User).filter(
        func.lower(models.User.email) == email,
        models.User.id != current_user.id,
    ).first()
    if taken:
        raise HTTPException(status_code=400, detail="Email already exists")

    if payload.new_password:
        _change_password(current_user, payload.current_password, payload.new_password)

    current_user.full_name = payload.full_name.strip()
    current_user.email = email
    if payload.avatar:
        current_user.avatar = payload.avatar
    db.commit()
    db.refresh(current_user)
    logger.info(f"User {current_user.id} updated profile")
    return {
        "success": True,
        "message": "Profile updated",
        "user": schemas.UserOut.model_validate(current_user),
    }

@router.put("/profile/password")
def change_password(
    payload: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    _change_password(current_user, payload.current_password, payload.new_password)
    db.commit()
    logger.info(f"User {current_user.id} changed password")
    return {"success": True, "message": "Password changed"}

@router.post("/upload-image")
def upload_image(
    type: str = Query(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user),
):
    # Anyone signed in may change their own avatar; content images are staff-only
    if type != "avatar" and not current_user.is_staff:
        raise HTTPException(status_code=403, detail="Forbidden. You do not have permission to access this resource.")

    try:
        stored = storage.save_image(file, type)
    except storage.UploadError as e:
        logger.warning(f"Upload rejected for user {current_user.id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if type == "avatar":
        current_user.avatar = stored["url"]
        db.commit()

    return {"success": True, **stored}
