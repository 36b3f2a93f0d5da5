"""
Three-step sign-up flow, independent of any UI.

Step 1 collects credentials, step 2 the profile, step 3 the terms. The
wizard only advances when the current step validates, keeps everything
entered when going back, and submits at most once.
"""
import logging
import re
from dataclasses import dataclass, field

from .client import AdminClient, ApiError

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
MIN_USERNAME_LENGTH = 3
LAST_STEP = 3

STRENGTH_LABELS = ("Very weak", "Weak", "Fair", "Strong", "Very strong")

# Server message fragment -> what the user sees
FRIENDLY_ERRORS = {
    "email already exists": "This email is already registered. Use another email or log in.",
    "username already taken": "This username is already taken. Please choose another one.",
    "invalid email format": "Invalid email format. Example: name@email.com",
    "password too weak": "Password is too weak. Mix upper and lower case letters, digits and symbols.",
    "registration failed": "Registration failed. Please try again.",
}
DEFAULT_ERROR = "Something went wrong during registration. Please try again."


def password_strength(password: str) -> int:
    """Score 0-5: two length tiers, mixed case, a digit, a symbol."""
    score = 0
    if len(password) >= 8:
        score += 1
    if len(password) >= 10:
        score += 1
    if re.search(r"[a-z]", password) and re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"\d", password):
        score += 1
    if re.search(r"[^a-zA-Z\d]", password):
        score += 1
    return score


def strength_label(score: int) -> str:
    return STRENGTH_LABELS[min(max(score, 0), len(STRENGTH_LABELS) - 1)]


def friendly_error(message: str | None) -> str:
    if not message:
        return DEFAULT_ERROR
    lowered = message.lower()
    for key, value in FRIENDLY_ERRORS.items():
        if key in lowered:
            return value
    return message


@dataclass
class RegistrationForm:
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    full_name: str = ""
    username: str = ""
    phone: str = ""
    company: str = ""
    job_title: str = ""
    city: str = ""
    agree_to_terms: bool = False
    agree_to_newsletter: bool = True

    def payload(self) -> dict:
        return {
            "email": self.email.strip(),
            "password": self.password,
            "full_name": self.full_name.strip(),
            "username": self.username.strip(),
            "phone": self.phone or None,
            "company": self.company or None,
            "job_title": self.job_title or None,
            "city": self.city or None,
            "newsletter_subscribed": self.agree_to_newsletter,
        }


@dataclass
class RegistrationResult:
    success: bool
    message: str
    redirect_to: str | None = None
    redirect_delay: int = 0
    user: dict | None = None


@dataclass
class RegistrationWizard:
    client: AdminClient
    form: RegistrationForm = field(default_factory=RegistrationForm)
    step: int = 1
    error: str = ""
    submitting: bool = False
    result: RegistrationResult | None = None

    @property
    def strength(self) -> int:
        return password_strength(self.form.password)

    def update(self, **values):
        for name, value in values.items():
            if not hasattr(self.form, name):
                raise AttributeError(f"Unknown field: {name}")
            setattr(self.form, name, value)
        self.error = ""

    def validate_step(self, step: int | None = None) -> str:
        """Return the first problem with ``step`` (default: current), or ''."""
        step = step or self.step
        f = self.form
        if step == 1:
            if not f.email.strip():
                return "Email is required"
            if not EMAIL_RE.match(f.email.strip()):
                return "Invalid email format. Example: name@email.com"
            if not f.password:
                return "Password is required"
            if len(f.password) < MIN_PASSWORD_LENGTH:
                return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            if f.password != f.confirm_password:
                return "Passwords do not match"
        elif step == 2:
            if not f.full_name.strip() or not f.username.strip():
                return "Full name and username are required"
            if len(f.username.strip()) < MIN_USERNAME_LENGTH:
                return f"Username must be at least {MIN_USERNAME_LENGTH} characters"
        elif step == 3:
            if not f.agree_to_terms:
                return "You must accept the terms and conditions"
        return ""

    def next(self) -> bool:
        self.error = self.validate_step()
        if self.error:
            return False
        if self.step < LAST_STEP:
            self.step += 1
        return True

    def back(self) -> bool:
        if self.step <= 1:
            return False
        self.step -= 1
        self.error = ""
        return True

    def submit(self) -> RegistrationResult:
        if self.result is not None and self.result.success:
            return self.result
        if self.submitting:
            return RegistrationResult(False, "Registration is already in progress")
        if self.step < LAST_STEP:
            return RegistrationResult(False, "Please complete every step before submitting")

        for step in range(1, LAST_STEP + 1):
            problem = self.validate_step(step)
            if problem:
                self.step, self.error = step, problem
                return RegistrationResult(False, problem)

        self.submitting = True
        try:
            body = self.client.register(self.form.payload())
        except ApiError as e:
            logger.warning(f"Registration for {self.form.email} rejected: {e.message}")
            self.error = friendly_error(e.message)
            return RegistrationResult(False, self.error)
        finally:
            self.submitting = False

        logger.info(f"Registered {self.form.email}")
        self.result = RegistrationResult(
            success=True,
            message="Registration successful! You can now log in.",
            redirect_to="/login",
            redirect_delay=3,
            user=body.get("user"),
        )
        return self.result

