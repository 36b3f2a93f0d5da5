from datetime import datetime, timedelta

from app import models


# ---------- articles ----------

def article_payload(**overrides):
    data = {
        "title": "Cloud Costs in 2025",
        "content": "Long read",
        "excerpt": "Short",
        "category": "Teknologi",
        "tags": ["cloud"],
    }
    data.update(overrides)
    return data


def test_create_article_generates_slug(client, editor, auth_headers):
    headers = auth_headers(editor)
    resp = client.post("/api/articles", json=article_payload(), headers=headers)
    assert resp.status_code == 201
    art = resp.json()["data"]
    assert art["slug"] == "cloud-costs-in-2025"
    assert art["category"] == "teknologi"
    assert art["status"] == "published"
    assert art["published_at"] is not None
    assert art["author_id"] == editor.id

    # Same title again gets a suffix
    resp = client.post("/api/articles", json=article_payload(), headers=headers)
    assert resp.json()["data"]["slug"] == "cloud-costs-in-2025-2"


def test_explicit_duplicate_slug_conflicts(client, editor, make_article, auth_headers):
    make_article(slug="taken")
    resp = client.post("/api/articles", json=article_payload(slug="taken"), headers=auth_headers(editor))
    assert resp.status_code == 409


def test_create_article_validates_category_and_role(client, editor, member, auth_headers):
    resp = client.post("/api/articles", json=article_payload(category="sports"), headers=auth_headers(editor))
    assert resp.status_code == 422

    resp = client.post("/api/articles", json=article_payload(), headers=auth_headers(member))
    assert resp.status_code == 403

    resp = client.post("/api/articles", json=article_payload(cover_image_url="/uploads/articles/x.png"),
                       headers=auth_headers(editor))
    assert resp.json()["data"]["cover_image"] == "/uploads/articles/x.png"


def test_public_listing_hides_drafts_and_scheduled(client, make_article):
    visible = make_article()
    make_article(status="draft")
    make_article(published_at=datetime.utcnow() + timedelta(days=1))

    resp = client.get("/api/articles")
    body = resp.json()
    assert [a["id"] for a in body["data"]] == [visible.id]
    assert body["pagination"] == {"page": 1, "limit": 9, "total": 1, "totalPages": 1}

    # Visitors cannot ask for drafts
    resp = client.get("/api/articles", params={"status": "draft"})
    assert [a["id"] for a in resp.json()["data"]] == [visible.id]


def test_staff_listing_filters(client, editor, make_article, auth_headers):
    make_article(title="Health tips", category="kesehatan")
    draft = make_article(title="Draft money", category="finansial", status="draft")
    make_article(title="Money talks", category="finansial")
    headers = auth_headers(editor)

    resp = client.get("/api/articles", headers=headers)
    assert resp.json()["pagination"]["total"] == 3

    resp = client.get("/api/articles", params={"status": "draft"}, headers=headers)
    assert [a["id"] for a in resp.json()["data"]] == [draft.id]

    resp = client.get("/api/articles", params={"category": "finansial", "search": "MONEY"}, headers=headers)
    assert resp.json()["pagination"]["total"] == 2

    resp = client.get("/api/articles", params={"category": "all"}, headers=headers)
    assert resp.json()["pagination"]["total"] == 3


def test_article_listing_pagination(client, make_article):
    for _ in range(11):
        make_article()
    resp = client.get("/api/articles", params={"page": 2})
    body = resp.json()
    assert len(body["data"]) == 2
    assert body["pagination"]["totalPages"] == 2


def test_featured_articles_cached_until_mutation(client, editor, make_article, auth_headers):
    make_article(featured=True)
    first = client.get("/api/articles/featured")
    assert len(first.json()["data"]) == 1
    assert client.get("/api/articles/featured").headers.get("x-cache") == "HIT"

    client.post("/api/articles", json=article_payload(featured=True), headers=auth_headers(editor))
    resp = client.get("/api/articles/featured")
    assert resp.headers.get("x-cache") is None
    assert len(resp.json()["data"]) == 2


def test_categories_count_published(client, make_article):
    make_article(category="karir")
    make_article(category="karir")
    make_article(category="bisnis", status="draft")
    data = {c["category"]: c["count"] for c in client.get("/api/articles/categories").json()["data"]}
    assert data["karir"] == 2
    assert data["bisnis"] == 0
    assert len(data) == len(models.ARTICLE_CATEGORIES)


def test_slug_lookup_views_and_related(client, editor, make_article):
    art = make_article(slug="hello-world", category="inovasi", author_id=editor.id)
    related = make_article(category="inovasi")
    make_article(category="inovasi", status="draft")
    make_article(category="karir")

    resp = client.get("/api/articles/slug/hello-world")
    assert resp.status_code == 200
    assert resp.json()["data"]["author"]["full_name"] == "Eddie Editor"
    assert client.get("/api/articles/slug/missing").status_code == 404

    assert client.post(f"/api/articles/{art.id}/views").json()["views"] == 1
    assert client.post(f"/api/articles/{art.id}/views").json()["views"] == 2

    resp = client.get(f"/api/articles/{art.id}/related")
    assert [a["id"] for a in resp.json()["data"]] == [related.id]


def test_update_and_delete_article(client, editor, make_article, auth_headers):
    art = make_article(status="draft", published_at=None)
    headers = auth_headers(editor)

    assert client.put(f"/api/articles/{art.id}", json={}, headers=headers).status_code == 400

    resp = client.put(f"/api/articles/{art.id}", json={"status": "published", "title": "Renamed"}, headers=headers)
    data = resp.json()["data"]
    assert data["title"] == "Renamed"
    assert data["published_at"] is not None

    assert client.get(f"/api/articles/{art.id}", headers=headers).status_code == 200
    assert client.delete(f"/api/articles/{art.id}", headers=headers).json()["success"] is True
    assert client.get(f"/api/articles/{art.id}", headers=headers).status_code == 404


def test_article_update_ignores_nulls_for_required_fields(client, editor, make_article, auth_headers):
    art = make_article(title="Keep me")
    headers = auth_headers(editor)

    resp = client.put(f"/api/articles/{art.id}", json={"title": None, "featured": None}, headers=headers)
    assert resp.status_code == 400

    resp = client.put(f"/api/articles/{art.id}", json={"title": None, "featured": True, "cover_image": None}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["title"] == "Keep me"
    assert data["featured"] is True
    assert data["cover_image"] is None


# ---------- comments ----------

def test_public_comment_is_pending(client, make_article):
    art = make_article()
    resp = client.post("/api/comments", json={
        "article_id": art.id, "name": "Reader", "email": "Reader@Example.com", "content": "Nice!",
    })
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "pending"
    assert data["email"] == "reader@example.com"


def test_comment_requires_published_article(client, make_article):
    draft = make_article(status="draft")
    resp = client.post("/api/comments", json={"article_id": draft.id, "name": "R", "content": "x"})
    assert resp.status_code == 404


def test_comment_moderation(client, db, editor, make_article, auth_headers):
    art = make_article()
    headers = auth_headers(editor)
    for name in ("a", "b"):
        db.add(models.Comment(article_id=art.id, name=name, content="c"))
    db.commit()

    assert client.get("/api/comments", headers=headers).status_code == 400

    comments = client.get("/api/comments", params={"article_id": art.id}, headers=headers).json()["data"]
    assert len(comments) == 2
    target = comments[0]["id"]

    resp = client.put(f"/api/comments/{target}", json={"status": "approved"}, headers=headers)
    assert resp.json()["data"]["status"] == "approved"
    assert client.put(f"/api/comments/{target}", json={"status": "hidden"}, headers=headers).status_code == 400
    assert client.put("/api/comments/9999", json={"status": "spam"}, headers=headers).status_code == 404

    approved = client.get("/api/comments", params={"article_id": art.id, "status": "approved"}, headers=headers)
    assert [c["id"] for c in approved.json()["data"]] == [target]

    assert client.delete(f"/api/comments/{target}", headers=headers).status_code == 200
    assert client.delete(f"/api/comments/{target}", headers=headers).status_code == 404


def test_deleting_article_removes_comments(client, db, editor, make_article, auth_headers):
    art = make_article()
    db.add(models.Comment(article_id=art.id, name="a", content="c"))
    db.commit()
    client.delete(f"/api/articles/{art.id}", headers=auth_headers(editor))
    db.expunge_all()
    assert db.query(models.Comment).count() == 0


# ---------- events & registrations ----------

def event_payload(**overrides):
    start = datetime.utcnow() + timedelta(days=10)
    data = {
        "title": "Python Workshop",
        "description": "Hands-on",
        "event_type": "workshop",
        "location_type": "hybrid",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "capacity": 2,
    }
    data.update(overrides)
    return data


def test_default_event_listing_is_upcoming_and_ongoing(client, make_event):
    later = make_event(start_date=datetime.utcnow() + timedelta(days=5),
                       end_date=datetime.utcnow() + timedelta(days=5, hours=1))
    sooner = make_event(status="ongoing", start_date=datetime.utcnow() - timedelta(hours=1),
                        end_date=datetime.utcnow() + timedelta(hours=1))
    done = make_event(status="completed", start_date=datetime.utcnow() - timedelta(days=3),
                      end_date=datetime.utcnow() - timedelta(days=3) + timedelta(hours=1))

    resp = client.get("/api/events")
    assert [e["id"] for e in resp.json()["data"]] == [sooner.id, later.id]

    resp = client.get("/api/events", params={"status": "all"})
    assert [e["id"] for e in resp.json()["data"]] == [done.id, sooner.id, later.id]

    resp = client.get("/api/events", params={"slug": done.slug})
    assert [e["id"] for e in resp.json()["data"]] == [done.id]

    assert [e["id"] for e in client.get("/api/events/past").json()["data"]] == [done.id]
    assert [e["id"] for e in client.get("/api/events/upcoming").json()["data"]] == [later.id]


def test_event_filters(client, make_event):
    make_event(title="Intro to ML", event_type="webinar", featured=True)
    make_event(title="Leadership", event_type="seminar")
    resp = client.get("/api/events", params={"event_type": "webinar"})
    assert [e["title"] for e in resp.json()["data"]] == ["Intro to ML"]
    resp = client.get("/api/events", params={"search": "leader"})
    assert [e["title"] for e in resp.json()["data"]] == ["Leadership"]
    resp = client.get("/api/events", params={"featured": "true"})
    assert len(resp.json()["data"]) == 1


def test_event_crud(client, editor, auth_headers):
    headers = auth_headers(editor)
    resp = client.post("/api/events", json=event_payload(), headers=headers)
    assert resp.status_code == 201
    ev = resp.json()["data"]
    assert ev["slug"] == "python-workshop"
    assert ev["status"] == "upcoming"

    bad = event_payload(end_date=(datetime.utcnow() + timedelta(days=1)).isoformat())
    assert client.post("/api/events", json=bad, headers=headers).status_code == 422
    assert client.post("/api/events", json=event_payload(slug="python-workshop"), headers=headers).status_code == 409

    assert client.put(f"/api/events/{ev['id']}", json={}, headers=headers).status_code == 400
    resp = client.put(f"/api/events/{ev['id']}", json={"featured": True}, headers=headers)
    assert resp.json()["data"]["featured"] is True

    assert client.get(f"/api/events/{ev['id']}").status_code == 200
    assert client.delete(f"/api/events/{ev['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/events/{ev['id']}").status_code == 404


def test_event_update_with_nulls(client, editor, make_event, auth_headers):
    ev = make_event(title="Meetup", capacity=50)
    headers = auth_headers(editor)

    assert client.put(f"/api/events/{ev.id}", json={"featured": None}, headers=headers).status_code == 400

    resp = client.put(f"/api/events/{ev.id}", json={"title": None, "capacity": None, "featured": True}, headers=headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["title"] == "Meetup"
    assert data["capacity"] is None
    assert data["featured"] is True


def test_registration_rules(client, db, editor, make_event, auth_headers):
    ev = make_event(capacity=2)
    form = {"event_id": ev.id, "name": "A", "email": "a@example.com"}

    resp = client.post("/api/registrations", json=form)
    assert resp.status_code == 201

    resp = client.post("/api/registrations", json={**form, "email": "A@example.com"})
    assert resp.status_code == 409

    assert client.post("/api/registrations", json={**form, "email": "b@example.com"}).status_code == 201
    resp = client.post("/api/registrations", json={**form, "email": "c@example.com"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "Event is full"

    db.refresh(ev)
    assert ev.registration_count == 2

    regs = client.get(f"/api/events/{ev.id}/registrations", headers=auth_headers(editor)).json()
    assert [r["email"] for r in regs["data"]] == ["a@example.com", "b@example.com"]


def test_registration_closed_for_completed_event(client, make_event):
    ev = make_event(status="completed")
    resp = client.post("/api/registrations", json={"event_id": ev.id, "name": "A", "email": "a@example.com"})
    assert resp.status_code == 400
    resp = client.post("/api/registrations", json={"event_id": 9999, "name": "A", "email": "a@example.com"})
    assert resp.status_code == 404


def test_deleting_event_removes_registrations(client, db, editor, make_event, auth_headers):
    ev = make_event()
    client.post("/api/registrations", json={"event_id": ev.id, "name": "A", "email": "a@example.com"})
    client.delete(f"/api/events/{ev.id}", headers=auth_headers(editor))
    db.expunge_all()
    assert db.query(models.EventRegistration).count() == 0


# ---------- gallery ----------

def test_gallery_soft_delete(client, editor, auth_headers):
    headers = auth_headers(editor)
    first = client.post("/api/gallery", json={"title": "Stage", "image_url": "/uploads/gallery/a.jpg",
                                              "category": "Event", "display_order": 2}, headers=headers)
    assert first.status_code == 201
    second = client.post("/api/gallery", json={"title": "Crowd", "image_url": "/uploads/gallery/b.jpg",
                                               "display_order": 1}, headers=headers)
    first_id, second_id = first.json()["data"]["id"], second.json()["data"]["id"]

    listing = client.get("/api/gallery").json()["data"]
    assert [g["id"] for g in listing] == [second_id, first_id]
    assert [g["id"] for g in client.get("/api/gallery", params={"category": "event"}).json()["data"]] == [first_id]

    assert client.put(f"/api/gallery/{first_id}", json={"title": "Main stage"}, headers=headers).status_code == 200
    assert client.delete(f"/api/gallery/{first_id}", headers=headers).status_code == 200
    assert client.get(f"/api/gallery/{first_id}").status_code == 404
    assert [g["id"] for g in client.get("/api/gallery").json()["data"]] == [second_id]


def test_gallery_update_rejects_empty_and_null_bodies(client, editor, auth_headers):
    headers = auth_headers(editor)
    item = client.post("/api/gallery", json={"title": "Stage", "image_url": "/uploads/gallery/a.jpg",
                                             "description": "Opening night"}, headers=headers).json()["data"]

    assert client.put(f"/api/gallery/{item['id']}", json={}, headers=headers).status_code == 400
    assert client.put(f"/api/gallery/{item['id']}", json={"title": None}, headers=headers).status_code == 400

    resp = client.put(f"/api/gallery/{item['id']}", json={"title": None, "description": None}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["title"] == "Stage"
    assert resp.json()["data"]["description"] is None


def test_gallery_requires_staff(client, member, auth_headers):
    resp = client.post("/api/gallery", json={"title": "x", "image_url": "/x.jpg"}, headers=auth_headers(member))
    assert resp.status_code == 403


# ---------- stats ----------

def test_stats_cached_and_invalidated(client, editor, make_article, make_event, auth_headers):
    headers = auth_headers(editor)
    make_article()
    make_article(status="draft")
    make_event()

    resp = client.get("/api/admin/stats", headers=headers)
    assert resp.headers["x-cache"] == "MISS"
    data = resp.json()["data"]
    assert data["articles"] == {"total": 2, "published": 1, "draft": 1}
    assert data["events"]["upcoming"] == 1
    assert data["users"] == 1

    assert client.get("/api/admin/stats", headers=headers).headers["x-cache"] == "HIT"

    client.post("/api/events", json=event_payload(), headers=headers)
    resp = client.get("/api/admin/stats", headers=headers)
    assert resp.headers["x-cache"] == "MISS"
    assert resp.json()["data"]["events"]["total"] == 2


def test_stats_refresh_after_signup(client, editor, auth_headers):
    headers = auth_headers(editor)
    assert client.get("/api/admin/stats", headers=headers).json()["data"]["users"] == 1

    client.post("/api/auth/register", json={"email": "fresh@example.com", "password": "password123",
                                            "full_name": "Fresh Face", "username": "fresh"})
    resp = client.get("/api/admin/stats", headers=headers)
    assert resp.headers["x-cache"] == "MISS"
    assert resp.json()["data"]["users"] == 2


def test_stats_requires_staff(client, member, auth_headers):
    assert client.get("/api/admin/stats", headers=auth_headers(member)).status_code == 403
