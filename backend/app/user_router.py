import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, func
from sqlalchemy.orm import Session
from .database import get_db, drop_required_nulls
from . import models, schemas, auth
from .cache import invalidate_content_caches
from .listing import apply_filters, apply_search, paginate_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])

def _get_user_or_404(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

def _check_unique(db: Session, email: str | None, username: str | None, exclude_id: int | None = None):
    if email:
        q = db.query(models.User).filter(func.lower(models.User.email) == email.lower())
        if exclude_id is not None:
            q = q.filter(models.User.id != exclude_id)
        if q.first():
            raise HTTPException(status_code=400, detail="Email already exists")
    if username:
        q = db.query(models.User).filter(models.User.username == username)
        if exclude_id is not None:
            q = q.filter(models.User.id != exclude_id)
        if q.first():
            raise HTTPException(status_code=400, detail="Username already taken")

def _counts_for(db: Session, users: list[models.User]) -> dict[int, schemas.UserCounts]:
    """Batch the per-user counts instead of one query per row."""
    if not users:
        return {}
    ids = [u.id for u in users]
    articles = dict(
        db.query(models.Article.author_id, func.count(models.Article.id))
        .filter(models.Article.author_id.in_(ids))
        .group_by(models.Article.author_id)
        .all()
    )
    comments = dict(
        db.query(models.Comment.user_id, func.count(models.Comment.id))
        .filter(models.Comment.user_id.in_(ids))
        .group_by(models.Comment.user_id)
        .all()
    )
    # Registrations are keyed by email, not by account
    emails = {u.email.lower(): u.id for u in users}
    registrations = {}
    rows = (
        db.query(func.lower(models.EventRegistration.email), func.count(models.EventRegistration.id))
        .filter(func.lower(models.EventRegistration.email).in_(list(emails)))
        .group_by(func.lower(models.EventRegistration.email))
        .all()
    )
    for email, count in rows:
        registrations[emails[email]] = count

    return {
        uid: schemas.UserCounts(
            articles=articles.get(uid, 0),
            comments=comments.get(uid, 0),
            registrations=registrations.get(uid, 0),
        )
        for uid in ids
    }

def _admin_out(user: models.User, counts: schemas.UserCounts | None = None) -> schemas.AdminUserOut:
    out = schemas.AdminUserOut.model_validate(user)
    if counts is not None:
        out.counts = counts
    return out

@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None),
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    query = db.query(models.User)
    query = apply_filters(query, models.User, {"role": role, "status": status})
    query = apply_search(query, search, [models.User.full_name, models.User.email, models.User.username])
    query = query.order_by(desc(models.User.created_at), desc(models.User.id))

    users, meta = paginate_query(query, page, limit)
    counts = _counts_for(db, users)
    rows = [_admin_out(u, counts.get(u.id)) for u in users]
    return {"success": True, "users": rows, "data": rows, "pagination": meta}

@router.post("", status_code=201)
def create_user(
    payload: schemas.AdminUserCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    _check_unique(db, payload.email, payload.username)
    user = models.User(
        email=payload.email.lower(),
        username=payload.username,
        hashed_password=auth.get_password_hash(payload.password),
        full_name=payload.full_name,
        phone=payload.phone,
        role=payload.role,
        status=payload.status,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    invalidate_content_caches()
    db.refresh(user)
    logger.info(f"Admin {admin.id} created user {user.id} with role {user.role}")
    return {"success": True, "message": "User created", "data": _admin_out(user)}

@router.get("/{user_id}")
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    user = _get_user_or_404(db, user_id)
    counts = _counts_for(db, [user])
    return {"success": True, "data": _admin_out(user, counts.get(user.id))}

@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: schemas.AdminUserUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    user = _get_user_or_404(db, user_id)
    update_data = drop_required_nulls(models.User, payload.model_dump(exclude_unset=True))

    if "role" in update_data and user.id == admin.id and update_data["role"] != user.role:
        logger.warning(f"Admin {admin.id} tried to change own role")
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    _check_unique(db, update_data.get("email"), update_data.get("username"), exclude_id=user.id)

    password = update_data.pop("password", None)
    if password:
        user.hashed_password = auth.get_password_hash(password)
    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()

    for field, value in update_data.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    invalidate_content_caches()
    logger.info(f"Admin {admin.id} updated user {user.id}: {sorted(update_data)}")
    return {"success": True, "message": "User updated", "data": _admin_out(user)}

@router.patch("/{user_id}/role")
def update_user_role(
    user_id: int,
    payload: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    if payload.role not in models.USER_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {', '.join(models.USER_ROLES)}")
    user = _get_user_or_404(db, user_id)
    if user.id == admin.id:
        logger.warning(f"Admin {admin.id} tried to change own role")
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    old_role = user.role
    user.role = payload.role
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {admin.id} changed role of user {user.id}: {old_role} -> {user.role}")
    return {"success": True, "message": "Role updated", "data": _admin_out(user)}

@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.get_current_super_admin),
):
    user = _get_user_or_404(db, user_id)
    if user.id == admin.id:
        logger.warning(f"Admin {admin.id} tried to delete own account")
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    if user.role == "super_admin":
        logger.warning(f"Admin {admin.id} tried to delete super_admin {user.id}")
        raise HTTPException(status_code=400, detail="Super admin accounts cannot be deleted")

    db.delete(user)
    db.commit()
    invalidate_content_caches()
    logger.info(f"Admin {admin.id} deleted user {user_id}")
    return {"success": True, "message": "User deleted"}
