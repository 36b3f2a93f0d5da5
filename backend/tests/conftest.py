import os

# Must be set before the app package reads its settings
os.environ["APP_DB_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import auth, models
from app.cache import cache
from app.database import Base, get_db
from app.main import app
from app.settings import settings

PASSWORD = "password123"


@pytest.fixture
def engine():
    """One in-memory database per test, shared by every session."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_fk(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: startup (create_all on the real engine, scheduler) is skipped
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", tmp_path)
    return tmp_path


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(email=None, role="user", status="active", password=PASSWORD, **fields):
        counter["n"] += 1
        n = counter["n"]
        user = models.User(
            email=email or f"user{n}@example.com",
            username=fields.pop("username", f"user{n}"),
            hashed_password=auth.get_password_hash(password),
            full_name=fields.pop("full_name", f"User {n}"),
            role=role,
            status=status,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {auth.token_for_user(user)}"}
    return _headers


@pytest.fixture
def super_admin(make_user):
    return make_user(email="root@example.com", role="super_admin", username="root", full_name="Root Admin")


@pytest.fixture
def editor(make_user):
    return make_user(email="editor@example.com", role="editor", username="editor", full_name="Eddie Editor")


@pytest.fixture
def member(make_user):
    return make_user(email="member@example.com", role="user", username="member", full_name="Mia Member")


@pytest.fixture
def make_article(db):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "title": f"Article {n}",
            "slug": f"article-{n}",
            "excerpt": f"Excerpt {n}",
            "content": f"Content {n}",
            "category": "teknologi",
            "status": "published",
            "published_at": datetime.utcnow() - timedelta(hours=n),
        }
        data.update(fields)
        article = models.Article(**data)
        db.add(article)
        db.commit()
        db.refresh(article)
        return article

    return _make


@pytest.fixture
def make_event(db):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        n = counter["n"]
        start = datetime.utcnow() + timedelta(days=n)
        data = {
            "title": f"Event {n}",
            "slug": f"event-{n}",
            "description": f"Description {n}",
            "event_type": "workshop",
            "location_type": "online",
            "start_date": start,
            "end_date": start + timedelta(hours=2),
            "status": "upcoming",
        }
        data.update(fields)
        ev = models.Event(**data)
        db.add(ev)
        db.commit()
        db.refresh(ev)
        return ev

    return _make
