import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from .cache import invalidate_content_caches
from .database import SessionLocal
from .models import Event
from .settings import settings

logger = logging.getLogger(__name__)

# coalesce=True rolls missed runs into one
job_defaults = {
    'coalesce': True,
    'max_instances': 1,
    'misfire_grace_time': 300
}
scheduler = BackgroundScheduler(timezone=settings.app_timezone, job_defaults=job_defaults)


def refresh_event_statuses(db: Session | None = None, now: datetime | None = None) -> dict:
    """
    Roll event statuses forward from their dates:
    upcoming -> ongoing once started, upcoming/ongoing -> completed once ended.
    Statuses never move backwards. Returns how many rows changed.
    """
    own_session = db is None
    db = db or SessionLocal()
    now = now or datetime.utcnow()
    try:
        completed = db.query(Event).filter(
            Event.status.in_(("upcoming", "ongoing")),
            Event.end_date < now,
        ).update({"status": "completed"}, synchronize_session=False)

        started = db.query(Event).filter(
            Event.status == "upcoming",
            Event.start_date <= now,
            Event.end_date >= now,
        ).update({"status": "ongoing"}, synchronize_session=False)

        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to refresh event statuses")
        raise
    finally:
        if own_session:
            db.close()

    if completed or started:
        invalidate_content_caches()
        logger.info(f"Event statuses refreshed: {started} ongoing, {completed} completed")
    return {"ongoing": started, "completed": completed}


def start_scheduler():
    scheduler.add_job(
        refresh_event_statuses,
        trigger=IntervalTrigger(minutes=settings.event_status_interval_minutes, jitter=30),
        id="refresh_event_statuses",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started, event statuses refresh every {settings.event_status_interval_minutes} min")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
