"""
Admin list controllers.

Each view fetches a collection through ``AdminClient``, filters and
paginates it locally, and runs mutations. Most mutations refetch the whole
collection afterwards; user and gallery deletes remove the row locally
instead. Failures never raise: they become ``Notice`` objects and the
previously loaded rows stay as they were.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .client import AdminClient, ApiError, AuthExpired
from .listing import Page, filter_items, paginate

logger = logging.getLogger(__name__)


@dataclass
class Notice:
    level: str  # success | error | info
    message: str


class GuardError(Exception):
    """A mutation refused before any request was sent."""
    pass


class ListView:
    page_size = 10
    search_fields: tuple = ()
    filter_names: tuple = ()

    def __init__(self, client: AdminClient, page_size: int | None = None):
        self.client = client
        if page_size is not None:
            self.page_size = page_size
        self.items: list[dict] = []
        self.search = ""
        self.filters = {name: "all" for name in self.filter_names}
        self.page = 1
        self.loading = False
        self.notices: list[Notice] = []
        self.redirect_to: str | None = None

    def fetch(self) -> list:
        raise NotImplementedError

    def notify(self, level: str, message: str):
        self.notices.append(Notice(level, message))
        log = logger.error if level == "error" else logger.info
        log(f"[{type(self).__name__}] {message}")

    def _handle_error(self, e: ApiError):
        if isinstance(e, AuthExpired):
            self.redirect_to = e.login_path
        self.notify("error", e.message)

    def load(self) -> bool:
        self.loading = True
        try:
            items = self.fetch()
        except ApiError as e:
            self._handle_error(e)
            return False
        finally:
            self.loading = False
        self.items = list(items)
        return True

    @property
    def filtered(self) -> list:
        return filter_items(self.items, self.search, self.search_fields, self.filters)

    @property
    def visible(self) -> Page:
        return paginate(self.filtered, self.page, self.page_size)

    @property
    def is_empty(self) -> bool:
        return not self.filtered

    def set_search(self, text: str):
        self.search = text or ""
        self.page = 1

    def set_filter(self, name: str, value: Any):
        if name not in self.filters:
            raise KeyError(f"Unknown filter: {name}")
        self.filters[name] = value
        self.page = 1

    def go_to(self, page: int):
        last = max(self.visible.total_pages, 1)
        self.page = min(max(page, 1), last)

    def mutate(self, call: Callable[[], Any], success_message: str, refetch: bool = True) -> bool:
        """Run ``call``; on success notify and, unless told otherwise, reload everything."""
        try:
            call()
        except ApiError as e:
            self._handle_error(e)
            return False
        self.notify("success", success_message)
        if refetch:
            self.load()
        return True

    def remove_local(self, item_id: int):
        self.items = [item for item in self.items if item.get("id") != item_id]
        self.go_to(self.page)


class CommentsView(ListView):
    search_fields = ("name", "email", "content")
    filter_names = ("status",)

    def __init__(self, client: AdminClient, article_id: int, page_size: int | None = None):
        super().__init__(client, page_size)
        self.article_id = article_id

    def fetch(self) -> list:
        return self.client.list_comments(self.article_id)

    def set_status(self, comment_id: int, status: str) -> bool:
        return self.mutate(
            lambda: self.client.update_comment_status(comment_id, status),
            f"Comment marked as {status}",
        )

    def approve(self, comment_id: int) -> bool:
        return self.set_status(comment_id, "approved")

    def mark_spam(self, comment_id: int) -> bool:
        return self.set_status(comment_id, "spam")

    def delete(self, comment_id: int) -> bool:
        return self.mutate(lambda: self.client.delete_comment(comment_id), "Comment deleted")


class UsersView(ListView):
    search_fields = ("full_name", "email", "username")
    filter_names = ("role", "status")

    def __init__(self, client: AdminClient, current_user_id: int, page_size: int | None = None):
        super().__init__(client, page_size)
        self.current_user_id = current_user_id

    def fetch(self) -> list:
        return self.client.list_users()

    def change_role(self, user_id: int, role: str) -> bool:
        return self.mutate(lambda: self.client.update_user_role(user_id, role), f"Role changed to {role}")

    def delete(self, user: dict) -> bool:
        if user.get("id") == self.current_user_id:
            raise GuardError("You cannot delete your own account")
        if user.get("role") == "super_admin":
            raise GuardError("Super admin accounts cannot be deleted")

        ok = self.mutate(lambda: self.client.delete_user(user["id"]), "User deleted", refetch=False)
        if ok:
            self.remove_local(user["id"])
        return ok


class EventsView(ListView):
    search_fields = ("title", "description")
    filter_names = ("status", "event_type")

    def fetch(self) -> list:
        return self.client.list_events()

    def toggle_featured(self, event: dict) -> bool:
        featured = not event.get("featured", False)
        return self.mutate(
            lambda: self.client.update_event(event["id"], {"featured": featured}),
            "Event featured" if featured else "Event unfeatured",
        )

    def delete(self, event_id: int) -> bool:
        return self.mutate(lambda: self.client.delete_event(event_id), "Event deleted")


class ArticlesView(ListView):
    search_fields = ("title", "excerpt")
    filter_names = ("status", "category")

    def fetch(self) -> list:
        return self.client.list_articles()

    def delete(self, article_id: int) -> bool:
        return self.mutate(lambda: self.client.delete_article(article_id), "Article deleted")


class GalleryView(ListView):
    page_size = 12
    search_fields = ("title", "description")
    filter_names = ("category",)

    def fetch(self) -> list:
        return self.client.list_gallery()

    def delete(self, item_id: int) -> bool:
        ok = self.mutate(lambda: self.client.delete_gallery_item(item_id), "Gallery item deleted", refetch=False)
        if ok:
            self.remove_local(item_id)
        return ok
