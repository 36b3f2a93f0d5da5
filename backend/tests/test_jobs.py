from datetime import datetime, timedelta

from app import models
from app.cache import cache
from app.jobs import refresh_event_statuses


def test_statuses_roll_forward(db, make_event):
    now = datetime(2025, 6, 1, 12, 0)
    not_started = make_event(start_date=now + timedelta(days=1), end_date=now + timedelta(days=1, hours=2))
    running = make_event(start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1))
    finished = make_event(start_date=now - timedelta(days=2), end_date=now - timedelta(days=2) + timedelta(hours=2))
    stale_ongoing = make_event(status="ongoing", start_date=now - timedelta(days=1), end_date=now - timedelta(hours=1))
    ids = {"not_started": not_started.id, "running": running.id, "finished": finished.id, "stale": stale_ongoing.id}

    cache.set("stats_admin", {"cached": True}, ttl=60)
    result = refresh_event_statuses(db=db, now=now)
    assert result == {"ongoing": 1, "completed": 2}
    assert cache.get("stats_admin") is None

    db.expire_all()
    status = {name: db.get(models.Event, event_id).status for name, event_id in ids.items()}
    assert status == {"not_started": "upcoming", "running": "ongoing", "finished": "completed", "stale": "completed"}


def test_completed_events_never_move_back(db, make_event):
    now = datetime(2025, 6, 1, 12, 0)
    ev = make_event(status="completed", start_date=now + timedelta(days=1), end_date=now + timedelta(days=2))
    assert refresh_event_statuses(db=db, now=now) == {"ongoing": 0, "completed": 0}
    db.refresh(ev)
    assert ev.status == "completed"
