from datetime import datetime, timezone
from typing import Literal
from pydantic import BaseModel, EmailStr, Field, AliasChoices, field_validator, model_validator

Role = Literal["super_admin", "admin", "editor", "user"]
UserStatus = Literal["active", "inactive", "suspended", "banned"]
ArticleCategory = Literal[
    "teknologi", "kesehatan", "finansial", "bisnis",
    "inovasi", "karir", "keberlanjutan", "lainnya",
]
ArticleStatus = Literal["draft", "published", "archived"]
EventType = Literal["workshop", "seminar", "webinar"]
EventStatus = Literal["upcoming", "ongoing", "completed"]
LocationType = Literal["online", "onsite", "hybrid"]


def _lower(value):
    return value.strip().lower() if isinstance(value, str) else value


def _naive_utc(value: datetime | None):
    # Columns store naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------- Users & auth ----------

class UserOut(BaseModel):
    id: int
    email: str
    username: str
    full_name: str | None = None
    phone: str | None = None
    avatar: str | None = None
    bio: str | None = None
    company: str | None = None
    job_title: str | None = None
    city: str | None = None
    role: str
    status: str
    email_verified: bool = False
    last_login_at: datetime | None = None
    login_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class UserCounts(BaseModel):
    articles: int = 0
    comments: int = 0
    registrations: int = 0

class AdminUserOut(UserOut):
    counts: UserCounts = UserCounts()

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1)
    username: str = Field(min_length=3, max_length=50)
    phone: str | None = None
    company: str | None = None
    job_title: str | None = None
    city: str | None = None
    newsletter_subscribed: bool = True

class LoginRequest(BaseModel):
    email: str
    password: str
    remember_me: bool = False

class MeUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    bio: str | None = None
    avatar: str | None = None
    company: str | None = None
    job_title: str | None = None
    city: str | None = None

class ProfileUpdate(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    avatar: str | None = None
    current_password: str | None = None
    new_password: str | None = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str

class AdminUserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1)
    phone: str | None = None
    role: Role = "user"
    status: UserStatus = "active"

class AdminUserUpdate(BaseModel):
    email: EmailStr | None = None
    username: str | None = Field(default=None, min_length=3, max_length=50)
    password: str | None = Field(default=None, min_length=8)
    full_name: str | None = None
    phone: str | None = None
    avatar: str | None = None
    bio: str | None = None
    role: Role | None = None
    status: UserStatus | None = None
    email_verified: bool | None = None

class RoleUpdate(BaseModel):
    # Checked against USER_ROLES by the route so a bad value is a 400
    role: str

    @field_validator("role", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)


# ---------- Articles & comments ----------

class ArticleOut(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: str | None = None
    content: str
    cover_image: str | None = None
    category: str
    tags: list[str] | None = None
    featured: bool = False
    status: str
    views: int = 0
    published_at: datetime | None = None
    author_id: int | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = None
    excerpt: str = ""
    content: str = Field(min_length=1)
    cover_image: str | None = Field(default=None, validation_alias=AliasChoices("cover_image", "cover_image_url"))
    category: ArticleCategory
    tags: list[str] = []
    featured: bool = False
    status: ArticleStatus = "published"
    published_at: datetime | None = None

    @field_validator("category", "status", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)

    @field_validator("published_at")
    @classmethod
    def normalize_datetime(cls, value):
        return _naive_utc(value)

class ArticleUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = None
    excerpt: str | None = None
    content: str | None = None
    cover_image: str | None = Field(default=None, validation_alias=AliasChoices("cover_image", "cover_image_url"))
    category: ArticleCategory | None = None
    tags: list[str] | None = None
    featured: bool | None = None
    status: ArticleStatus | None = None
    published_at: datetime | None = None

    @field_validator("category", "status", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)

    @field_validator("published_at")
    @classmethod
    def normalize_datetime(cls, value):
        return _naive_utc(value)

class CommentOut(BaseModel):
    id: int
    article_id: int
    user_id: int | None = None
    name: str
    email: str | None = None
    content: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

class CommentCreate(BaseModel):
    article_id: int
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    content: str = Field(min_length=1)

class CommentStatusUpdate(BaseModel):
    status: str

    @field_validator("status", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)


# ---------- Events & registrations ----------

class EventOut(BaseModel):
    id: int
    title: str
    slug: str
    description: str
    cover_image: str | None = None
    event_type: str
    location_type: str
    location_venue: str | None = None
    start_date: datetime
    end_date: datetime
    tags: list[str] | None = None
    featured: bool = False
    status: str
    capacity: int | None = None
    registration_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    slug: str | None = None
    description: str = Field(min_length=1)
    cover_image: str | None = None
    event_type: EventType
    location_type: LocationType
    location_venue: str | None = None
    start_date: datetime
    end_date: datetime
    tags: list[str] = []
    featured: bool = False
    status: EventStatus = "upcoming"
    capacity: int | None = Field(default=None, ge=1)

    @field_validator("event_type", "location_type", "status", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_datetime(cls, value):
        return _naive_utc(value)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = None
    description: str | None = None
    cover_image: str | None = None
    event_type: EventType | None = None
    location_type: LocationType | None = None
    location_venue: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    tags: list[str] | None = None
    featured: bool | None = None
    status: EventStatus | None = None
    capacity: int | None = Field(default=None, ge=1)

    @field_validator("event_type", "location_type", "status", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_datetime(cls, value):
        return _naive_utc(value)

class RegistrationCreate(BaseModel):
    event_id: int
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str | None = None
    company: str | None = None
    custom_data: dict | None = None

class RegistrationOut(BaseModel):
    id: int
    event_id: int
    name: str
    email: str
    phone: str | None = None
    company: str | None = None
    custom_data: dict | None = None
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Gallery ----------

class GalleryOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    image_url: str
    category: str
    event_id: int | None = None
    featured: bool = False
    display_order: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True

class GalleryCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    image_url: str = Field(min_length=1)
    category: str = "lainnya"
    event_id: int | None = None
    featured: bool = False
    display_order: int = 0

    @field_validator("category", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)

class GalleryUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = None
    category: str | None = None
    event_id: int | None = None
    featured: bool | None = None
    display_order: int | None = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        return _lower(value)
