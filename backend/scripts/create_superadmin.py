"""
Create a super_admin account, or promote an existing one.

    python scripts/create_superadmin.py --email admin@example.com --password 'S3cret!pass'
"""
import argparse
import getpass
import logging
import sys
from pathlib import Path

from sqlalchemy import func

# Add the backend directory to sys.path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.auth import get_password_hash
from app.database import SessionLocal, init_db
from app.models import User

logger = logging.getLogger("create_superadmin")


def create_superadmin(db, email: str, password: str, full_name: str, username: str | None = None) -> tuple[User, bool]:
    """Returns (user, created). An existing account is promoted and reactivated, its password kept."""
    email = email.strip().lower()
    user = db.query(User).filter(func.lower(User.email) == email).first()
    if user:
        user.role = "super_admin"
        user.status = "active"
        db.commit()
        return user, False

    username = username or email.split("@")[0]
    base, n = username, 2
    while db.query(User.id).filter(User.username == username).first():
        username = f"{base}{n}"
        n += 1

    user = User(
        email=email,
        username=username,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role="super_admin",
        status="active",
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Create or promote a super admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", help="Prompted for when omitted")
    parser.add_argument("--full-name", default="Super Admin")
    parser.add_argument("--username")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        logger.error("Password must be at least 8 characters")
        sys.exit(1)

    init_db()
    db = SessionLocal()
    try:
        user, created = create_superadmin(db, args.email, password, args.full_name, args.username)
        if created:
            logger.info(f"Super admin created: id={user.id} email={user.email} username={user.username}")
        else:
            logger.info(f"Existing user {user.email} (id={user.id}) promoted to super_admin")
    finally:
        db.close()


if __name__ == "__main__":
    main()
