"""
Synchronous httpx client for the admin REST API.

Every call returns the decoded JSON envelope on success. Non-2xx answers
raise ``ApiError``; a 401 raises ``AuthExpired`` so callers can send the
user back to the login page.
"""
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

LOGIN_PATH = "/admin/login"


class ApiError(Exception):
    def __init__(self, status_code: int | None, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AuthExpired(ApiError):
    def __init__(self, message: str = "Session expired. Please login again."):
        super().__init__(401, message)
        self.login_path = LOGIN_PATH


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body.get("message") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"


class AdminClient:
    """
    Wraps an ``httpx.Client``. Pass ``http`` to reuse an existing client
    (FastAPI's TestClient works too); otherwise one is created for
    ``base_url``. The auth cookie set by login is kept by the underlying
    client; the bearer token is sent as well when known.
    """

    def __init__(self, base_url: str = "http://localhost:8000", token: str | None = None,
                 http: httpx.Client | None = None, timeout: float = 10.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout, follow_redirects=True)
        self.token = token

    def close(self):
        self.http.close()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = self.http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(None, f"Network error: {e}") from e

        if resp.status_code == 401:
            self.token = None
            raise AuthExpired(_error_message(resp))
        if resp.is_error:
            message = _error_message(resp)
            logger.warning(f"{method} {path} -> {resp.status_code}: {message}")
            raise ApiError(resp.status_code, message)
        return resp.json()

    def _fetch_all(self, path: str, params: dict | None = None, limit: int = 100) -> list:
        """Walk every page of a paginated listing."""
        params = {k: v for k, v in (params or {}).items() if v is not None}
        items, page = [], 1
        while True:
            body = self._request("GET", path, params={**params, "page": page, "limit": limit})
            items.extend(body.get("data") or [])
            total_pages = (body.get("pagination") or {}).get("totalPages", 1)
            if page >= total_pages:
                return items
            page += 1

    # ---- auth ----

    def login(self, email: str, password: str, remember_me: bool = False) -> dict:
        body = self._request("POST", "/api/auth/login",
                             json={"email": email, "password": password, "remember_me": remember_me})
        self.token = body.get("token")
        return body["user"]

    def logout(self):
        try:
            self._request("POST", "/api/auth/logout")
        finally:
            self.token = None

    def me(self) -> dict:
        return self._request("GET", "/api/auth/me")["user"]

    def register(self, payload: dict) -> dict:
        return self._request("POST", "/api/auth/register", json=payload)

    # ---- comments ----

    def list_comments(self, article_id: int, status: str | None = None) -> list:
        params = {"article_id": article_id}
        if status:
            params["status"] = status
        return self._request("GET", "/api/comments", params=params)["data"]

    def update_comment_status(self, comment_id: int, status: str) -> dict:
        return self._request("PUT", f"/api/comments/{comment_id}", json={"status": status})["data"]

    def delete_comment(self, comment_id: int):
        return self._request("DELETE", f"/api/comments/{comment_id}")

    # ---- users ----

    def list_users(self, role: str | None = None, status: str | None = None, search: str | None = None) -> list:
        return self._fetch_all("/api/admin/users", {"role": role, "status": status, "search": search})

    def update_user_role(self, user_id: int, role: str) -> dict:
        return self._request("PATCH", f"/api/admin/users/{user_id}/role", json={"role": role})["data"]

    def delete_user(self, user_id: int):
        return self._request("DELETE", f"/api/admin/users/{user_id}")

    # ---- events ----

    def list_events(self, status: str = "all", event_type: str | None = None) -> list:
        return self._fetch_all("/api/events", {"status": status, "event_type": event_type})

    def update_event(self, event_id: int, changes: dict) -> dict:
        return self._request("PUT", f"/api/events/{event_id}", json=changes)["data"]

    def delete_event(self, event_id: int):
        return self._request("DELETE", f"/api/events/{event_id}")

    # ---- articles ----

    def list_articles(self, status: str | None = None, category: str | None = None) -> list:
        return self._fetch_all("/api/articles", {"status": status, "category": category})

    def get_article(self, article_id: int) -> dict:
        return self._request("GET", f"/api/articles/{article_id}")["data"]

    def delete_article(self, article_id: int):
        return self._request("DELETE", f"/api/articles/{article_id}")

    # ---- gallery ----

    def list_gallery(self, category: str | None = None) -> list:
        return self._fetch_all("/api/gallery", {"category": category})

    def delete_gallery_item(self, item_id: int):
        return self._request("DELETE", f"/api/gallery/{item_id}")

    # ---- profile ----

    def update_profile(self, full_name: str, email: str, avatar: str | None = None,
                       current_password: str | None = None, new_password: str | None = None) -> dict:
        payload = {"full_name": full_name, "email": email, "avatar": avatar}
        if new_password:
            payload.update(current_password=current_password, new_password=new_password)
        return self._request("PUT", "/api/profile", json=payload)["user"]

    def change_password(self, current_password: str, new_password: str):
        return self._request("PUT", "/api/profile/password",
                             json={"current_password": current_password, "new_password": new_password})

    def upload_image(self, upload_type: str, filename: str, content: bytes, content_type: str) -> dict:
        return self._request("POST", "/api/upload-image", params={"type": upload_type},
                             files={"file": (filename, content, content_type)})
