import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.encoders import jsonable_encoder
from slugify import slugify
from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from .database import get_db, drop_required_nulls
from . import models, auth
from .models import Article, Comment, Event, EventRegistration, GalleryItem
from .schemas import (
    ArticleOut, ArticleCreate, ArticleUpdate,
    CommentOut, CommentCreate, CommentStatusUpdate,
    EventOut, EventCreate, EventUpdate,
    RegistrationCreate, RegistrationOut,
    GalleryOut, GalleryCreate, GalleryUpdate,
)
from .cache import cache, invalidate_content_caches
from .listing import apply_filters, apply_search, paginate_query
from .settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


def _slug_taken(db: Session, model, slug: str, exclude_id: int | None = None) -> bool:
    q = db.query(model.id).filter(model.slug == slug)
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    return q.first() is not None

def _resolve_slug(db: Session, model, title: str, slug: str | None, exclude_id: int | None = None) -> str:
    """
    An explicit slug must be free (409 otherwise). A slug derived from the
    title gets a numeric suffix until it is free.
    """
    if slug:
        slug = slugify(slug)
        if not slug:
            raise HTTPException(status_code=400, detail="Invalid slug")
        if _slug_taken(db, model, slug, exclude_id):
            raise HTTPException(status_code=409, detail="Slug already exists")
        return slug

    base = slugify(title) or "item"
    candidate, n = base, 2
    while _slug_taken(db, model, candidate, exclude_id):
        candidate = f"{base}-{n}"
        n += 1
    return candidate

def _published(query, now: datetime | None = None):
    # Scheduled posts stay hidden until their publish time
    now = now or datetime.utcnow()
    return query.filter(
        Article.status == "published",
        or_(Article.published_at.is_(None), Article.published_at <= now),
    )

def _is_staff(user: Optional[models.User]) -> bool:
    return bool(user and user.is_staff)


# ---------- Articles ----------

@router.get("/articles")
def list_articles(
    status: str | None = Query(None),
    category: str | None = Query(None),
    search: str | None = Query(None),
    featured: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_current_user_optional),
):
    # Visitors only ever see published articles
    if not _is_staff(current_user):
        status = "published"

    query = db.query(Article)
    if status == "published":
        query = _published(query)
    else:
        query = apply_filters(query, Article, {"status": status})
    query = apply_filters(query, Article, {"category": category})
    if featured is not None:
        query = query.filter(Article.featured == featured)
    query = apply_search(query, search, [Article.title, Article.excerpt, Article.content])
    query = query.order_by(desc(func.coalesce(Article.published_at, Article.created_at)), desc(Article.id))

    rows, meta = paginate_query(query, page, limit)
    return {
        "success": True,
        "data": [ArticleOut.model_validate(a) for a in rows],
        "pagination": meta,
    }

@router.get("/articles/featured")
def featured_articles(
    response: Response,
    limit: int = Query(3, ge=1, le=20),
    db: Session = Depends(get_db),
):
    def load():
        rows = (
            _published(db.query(Article))
            .filter(Article.featured.is_(True))
            .order_by(desc(Article.published_at), desc(Article.id))
            .limit(limit)
            .all()
        )
        return jsonable_encoder({"success": True, "data": [ArticleOut.model_validate(a) for a in rows]})

    result, hit = cache.get_or_set(f"articles_featured_{limit}", load, ttl=300)
    if hit:
        response.headers["X-Cache"] = "HIT"
    return result

@router.get("/articles/categories")
def article_categories(db: Session = Depends(get_db)):
    counts = dict(
        _published(db.query(Article.category, func.count(Article.id)))
        .group_by(Article.category)
        .all()
    )
    return {
        "success": True,
        "data": [{"category": c, "count": counts.get(c, 0)} for c in models.ARTICLE_CATEGORIES],
    }

@router.get("/articles/slug/{slug}")
def article_by_slug(slug: str, db: Session = Depends(get_db)):
    art = _published(db.query(Article)).filter(Article.slug == slug).first()
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")
    data = ArticleOut.model_validate(art).model_dump()
    data["author"] = (
        {"id": art.author.id, "full_name": art.author.full_name, "avatar": art.author.avatar}
        if art.author else None
    )
    return {"success": True, "data": data}

@router.post("/articles/{article_id}/views")
def increment_article_views(article_id: int, db: Session = Depends(get_db)):
    art = db.get(Article, article_id)
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")
    art.views = (art.views or 0) + 1
    db.commit()
    return {"success": True, "views": art.views}

@router.get("/articles/{article_id}/related")
def related_articles(
    article_id: int,
    limit: int = Query(3, ge=1, le=20),
    db: Session = Depends(get_db),
):
    art = db.get(Article, article_id)
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")
    rows = (
        _published(db.query(Article))
        .filter(Article.category == art.category, Article.id != art.id)
        .order_by(desc(Article.published_at), desc(Article.id))
        .limit(limit)
        .all()
    )
    return {"success": True, "data": [ArticleOut.model_validate(a) for a in rows]}

@router.get("/articles/{article_id}")
def get_article(
    article_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    art = db.get(Article, article_id)
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"success": True, "data": ArticleOut.model_validate(art)}

@router.post("/articles", status_code=201)
def create_article(
    payload: ArticleCreate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    data = payload.model_dump()
    data["slug"] = _resolve_slug(db, Article, payload.title, payload.slug)
    if data["status"] == "published" and data["published_at"] is None:
        data["published_at"] = datetime.utcnow()

    art = Article(author_id=staff.id, **data)
    db.add(art)
    db.commit()
    db.refresh(art)
    invalidate_content_caches()
    logger.info(f"User {staff.id} created article {art.id} ({art.slug})")
    return {"success": True, "message": "Article created", "data": ArticleOut.model_validate(art)}

@router.put("/articles/{article_id}")
def update_article(
    article_id: int,
    payload: ArticleUpdate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    art = db.get(Article, article_id)
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")

    update_data = drop_required_nulls(Article, payload.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("slug"):
        update_data["slug"] = _resolve_slug(db, Article, art.title, update_data["slug"], exclude_id=art.id)
    else:
        update_data.pop("slug", None)
    if update_data.get("status") == "published" and art.published_at is None and not update_data.get("published_at"):
        update_data["published_at"] = datetime.utcnow()

    for field, value in update_data.items():
        setattr(art, field, value)
    db.commit()
    db.refresh(art)
    invalidate_content_caches()
    logger.info(f"User {staff.id} updated article {art.id}: {sorted(update_data)}")
    return {"success": True, "message": "Article updated", "data": ArticleOut.model_validate(art)}

@router.delete("/articles/{article_id}")
def delete_article(
    article_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    art = db.get(Article, article_id)
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")
    db.delete(art)
    db.commit()
    invalidate_content_caches()
    logger.info(f"User {staff.id} deleted article {article_id}")
    return {"success": True, "message": "Article deleted"}


# ---------- Comments ----------

@router.post("/comments", status_code=201)
def create_comment(
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: Optional[models.User] = Depends(auth.get_current_user_optional),
):
    art = _published(db.query(Article)).filter(Article.id == payload.article_id).first()
    if not art:
        raise HTTPException(status_code=404, detail="Article not found")

    comment = Comment(
        article_id=art.id,
        user_id=current_user.id if current_user else None,
        name=payload.name.strip(),
        email=payload.email.lower() if payload.email else None,
        content=payload.content.strip(),
        status="pending",
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    invalidate_content_caches()
    logger.info(f"New comment {comment.id} on article {art.id} awaiting moderation")
    return {
        "success": True,
        "message": "Comment submitted and awaiting moderation",
        "data": CommentOut.model_validate(comment),
    }

@router.get("/comments")
def list_comments(
    article_id: int | None = Query(None),
    status: str | None = Query(None),
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    if article_id is None:
        raise HTTPException(status_code=400, detail="article_id is required")
    query = db.query(Comment).filter(Comment.article_id == article_id)
    query = apply_filters(query, Comment, {"status": status})
    rows = query.order_by(desc(Comment.created_at), desc(Comment.id)).all()
    return {"success": True, "data": [CommentOut.model_validate(c) for c in rows], "total": len(rows)}

@router.put("/comments/{comment_id}")
def update_comment_status(
    comment_id: int,
    payload: CommentStatusUpdate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    if payload.status not in models.COMMENT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(models.COMMENT_STATUSES)}",
        )
    comment = db.get(Comment, comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    comment.status = payload.status
    db.commit()
    db.refresh(comment)
    invalidate_content_caches()
    logger.info(f"User {staff.id} set comment {comment.id} to {comment.status}")
    return {"success": True, "message": "Comment updated", "data": CommentOut.model_validate(comment)}

@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    comment = db.get(Comment, comment_id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    db.delete(comment)
    db.commit()
    invalidate_content_caches()
    logger.info(f"User {staff.id} deleted comment {comment_id}")
    return {"success": True, "message": "Comment deleted"}


# ---------- Events ----------

@router.get("/events")
def list_events(
    slug: str | None = Query(None),
    status: str | None = Query(None),
    event_type: str | None = Query(None),
    featured: bool | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Event)
    if slug:
        query = query.filter(Event.slug == slug)
    if status is None and not slug:
        # Default listing: what can still be attended
        query = query.filter(Event.status.in_(("upcoming", "ongoing")))
    else:
        query = apply_filters(query, Event, {"status": status})
    query = apply_filters(query, Event, {"event_type": event_type})
    if featured is not None:
        query = query.filter(Event.featured == featured)
    query = apply_search(query, search, [Event.title, Event.description])
    query = query.order_by(Event.start_date.asc(), Event.id.asc())

    rows, meta = paginate_query(query, page, limit)
    return {
        "success": True,
        "data": [EventOut.model_validate(e) for e in rows],
        "pagination": meta,
    }

@router.get("/events/upcoming")
def upcoming_events(limit: int = Query(6, ge=1, le=50), db: Session = Depends(get_db)):
    rows = (
        db.query(Event)
        .filter(Event.status == "upcoming")
        .order_by(Event.start_date.asc(), Event.id.asc())
        .limit(limit)
        .all()
    )
    return {"success": True, "data": [EventOut.model_validate(e) for e in rows]}

@router.get("/events/past")
def past_events(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Event).filter(Event.status == "completed").order_by(desc(Event.start_date), desc(Event.id))
    rows, meta = paginate_query(query, page, limit)
    return {
        "success": True,
        "data": [EventOut.model_validate(e) for e in rows],
        "pagination": meta,
    }

@router.get("/events/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    return {"success": True, "data": EventOut.model_validate(ev)}

@router.post("/events", status_code=201)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    data = payload.model_dump()
    data["slug"] = _resolve_slug(db, Event, payload.title, payload.slug)
    ev = Event(**data)
    db.add(ev)
    db.commit()
    db.refresh(ev)
    invalidate_content_caches()
    logger.info(f"User {staff.id} created event {ev.id} ({ev.slug})")
    return {"success": True, "message": "Event created", "data": EventOut.model_validate(ev)}

@router.put("/events/{event_id}")
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")

    update_data = drop_required_nulls(Event, payload.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("slug"):
        update_data["slug"] = _resolve_slug(db, Event, ev.title, update_data["slug"], exclude_id=ev.id)
    else:
        update_data.pop("slug", None)

    start = update_data.get("start_date") or ev.start_date
    end = update_data.get("end_date") or ev.end_date
    if end < start:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    for field, value in update_data.items():
        setattr(ev, field, value)
    db.commit()
    db.refresh(ev)
    invalidate_content_caches()
    logger.info(f"User {staff.id} updated event {ev.id}: {sorted(update_data)}")
    return {"success": True, "message": "Event updated", "data": EventOut.model_validate(ev)}

@router.delete("/events/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    """Delete an event together with its registrations."""
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    db.delete(ev)
    db.commit()
    invalidate_content_caches()
    logger.info(f"User {staff.id} deleted event {event_id}")
    return {"success": True, "message": "Event deleted"}

@router.get("/events/{event_id}/registrations")
def event_registrations(
    event_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    rows = (
        db.query(EventRegistration)
        .filter(EventRegistration.event_id == event_id)
        .order_by(EventRegistration.created_at.asc(), EventRegistration.id.asc())
        .all()
    )
    return {"success": True, "data": [RegistrationOut.model_validate(r) for r in rows], "total": len(rows)}


# ---------- Registrations ----------

@router.post("/registrations", status_code=201)
def register_for_event(payload: RegistrationCreate, db: Session = Depends(get_db)):
    ev = db.get(Event, payload.event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    if ev.status == "completed":
        raise HTTPException(status_code=400, detail="Registration is closed for this event")
    if ev.capacity is not None and (ev.registration_count or 0) >= ev.capacity:
        logger.warning(f"Registration rejected, event {ev.id} is full")
        raise HTTPException(status_code=409, detail="Event is full")

    email = payload.email.lower()
    exists = db.query(EventRegistration.id).filter(
        EventRegistration.event_id == ev.id,
        func.lower(EventRegistration.email) == email,
    ).first()
    if exists:
        raise HTTPException(status_code=409, detail="This email is already registered for the event")

    reg = EventRegistration(
        event_id=ev.id,
        name=payload.name.strip(),
        email=email,
        phone=payload.phone,
        company=payload.company,
        custom_data=payload.custom_data,
    )
    db.add(reg)
    ev.registration_count = (ev.registration_count or 0) + 1
    db.commit()
    db.refresh(reg)
    invalidate_content_caches()
    logger.info(f"Registration {reg.id} for event {ev.id} ({ev.registration_count}/{ev.capacity or 'unlimited'})")
    return {"success": True, "message": "Registration successful", "data": RegistrationOut.model_validate(reg)}


# ---------- Gallery ----------

def _get_gallery_item_or_404(db: Session, item_id: int) -> GalleryItem:
    item = db.query(GalleryItem).filter(GalleryItem.id == item_id, GalleryItem.deleted_at.is_(None)).first()
    if not item:
        raise HTTPException(status_code=404, detail="Gallery item not found")
    return item

@router.get("/gallery")
def list_gallery(
    category: str | None = Query(None),
    featured: bool | None = Query(None),
    event_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(GalleryItem).filter(GalleryItem.deleted_at.is_(None))
    query = apply_filters(query, GalleryItem, {"category": category, "event_id": event_id})
    if featured is not None:
        query = query.filter(GalleryItem.featured == featured)
    query = query.order_by(GalleryItem.display_order.asc(), desc(GalleryItem.created_at), desc(GalleryItem.id))

    rows, meta = paginate_query(query, page, limit)
    return {
        "success": True,
        "data": [GalleryOut.model_validate(g) for g in rows],
        "pagination": meta,
    }

@router.get("/gallery/{item_id}")
def get_gallery_item(item_id: int, db: Session = Depends(get_db)):
    return {"success": True, "data": GalleryOut.model_validate(_get_gallery_item_or_404(db, item_id))}

@router.post("/gallery", status_code=201)
def create_gallery_item(
    payload: GalleryCreate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    if payload.event_id is not None and not db.get(Event, payload.event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    item = GalleryItem(**payload.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    invalidate_content_caches()
    logger.info(f"User {staff.id} added gallery item {item.id}")
    return {"success": True, "message": "Gallery item created", "data": GalleryOut.model_validate(item)}

@router.put("/gallery/{item_id}")
def update_gallery_item(
    item_id: int,
    payload: GalleryUpdate,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    item = _get_gallery_item_or_404(db, item_id)
    update_data = drop_required_nulls(GalleryItem, payload.model_dump(exclude_unset=True))
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("event_id") is not None and not db.get(Event, update_data["event_id"]):
        raise HTTPException(status_code=404, detail="Event not found")
    for field, value in update_data.items():
        setattr(item, field, value)
    db.commit()
    db.refresh(item)
    invalidate_content_caches()
    return {"success": True, "message": "Gallery item updated", "data": GalleryOut.model_validate(item)}

@router.delete("/gallery/{item_id}")
def delete_gallery_item(
    item_id: int,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    item = _get_gallery_item_or_404(db, item_id)
    item.deleted_at = datetime.utcnow()
    db.commit()
    invalidate_content_caches()
    logger.info(f"User {staff.id} deleted gallery item {item_id}")
    return {"success": True, "message": "Gallery item deleted"}


# ---------- Stats ----------

def _count_by(db: Session, column) -> dict:
    return dict(db.query(column, func.count()).group_by(column).all())

def _admin_stats(db: Session) -> dict:
    articles = _count_by(db, Article.status)
    events = _count_by(db, Event.status)
    comments = _count_by(db, Comment.status)
    return {
        "success": True,
        "data": {
            "articles": {
                "total": sum(articles.values()),
                "published": articles.get("published", 0),
                "draft": articles.get("draft", 0),
            },
            "events": {
                "total": sum(events.values()),
                "upcoming": events.get("upcoming", 0),
                "ongoing": events.get("ongoing", 0),
            },
            "gallery": db.query(GalleryItem).filter(GalleryItem.deleted_at.is_(None)).count(),
            "users": db.query(models.User).count(),
            "comments": {
                "total": sum(comments.values()),
                "pending": comments.get("pending", 0),
                "approved": comments.get("approved", 0),
                "spam": comments.get("spam", 0),
            },
        },
    }

@router.get("/admin/stats")
def admin_stats(
    response: Response,
    db: Session = Depends(get_db),
    staff: models.User = Depends(auth.get_current_staff),
):
    result, hit = cache.get_or_set("stats_admin", lambda: _admin_stats(db), ttl=settings.stats_cache_ttl)
    response.headers["X-Cache"] = "HIT" if hit else "MISS"
    return result
