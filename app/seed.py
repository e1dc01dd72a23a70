import logging
import uuid
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError, OperationalError

from app.db.session import SessionLocal
from app.core.security import hash_password
from app.models.user import User, ROLE_ADMIN
from app.models.destination import Destination
from app.models.package import Package

logger = logging.getLogger(__name__)

DESTINATIONS = [
    ("Paris", "France", "The city of light, art and romance."),
    ("Bali", "Indonesia", "Temples, rice terraces and surf beaches."),
    ("Tokyo", "Japan", "Where ancient tradition meets the future."),
    ("Santorini", "Greece", "Whitewashed villages above the Aegean."),
    ("New York City", "United States", "The city that never sleeps."),
    ("Machu Picchu", "Peru", "The lost citadel of the Incas."),
]

# (name, destination, duration days, max group, difficulty, price, summary)
PACKAGES = [
    ("Romantic Paris Getaway", "Paris", 5, 12, "easy", "1499", "A romantic 5-day luxury package in the heart of Paris"),
    ("Bali Bliss Adventure", "Bali", 7, 10, "medium", "1199", "A 7-day adventure exploring the best of Bali"),
    ("Tokyo Explorer", "Tokyo", 6, 8, "medium", "1699", "A 6-day journey through traditional and modern Tokyo"),
]


def ensure_user(db: Session, email: str, password: str, role: str, name: str):
    u = db.query(User).filter(User.email == email).first()
    if u:
        return
    db.add(
        User(
            id=str(uuid.uuid4()),
            email=email,
            full_name=name,
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
    )
    db.commit()


def ensure_catalog(db: Session) -> None:
    by_name = {d.name: d for d in db.query(Destination).all()}
    for name, country, summary in DESTINATIONS:
        if name not in by_name:
            d = Destination(id=str(uuid.uuid4()), name=name, country=country, summary=summary)
            db.add(d)
            by_name[name] = d
    db.flush()

    existing = {p.name for p in db.query(Package).all()}
    for name, dest, duration, group, difficulty, price, summary in PACKAGES:
        if name in existing:
            continue
        db.add(Package(
            id=str(uuid.uuid4()),
            name=name,
            destination_id=by_name[dest].id,
            duration=duration,
            max_group_size=group,
            difficulty=difficulty,
            price=Decimal(price),
            summary=summary,
            featured=True,
        ))
    db.commit()


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@travelease.com", "admin12345", ROLE_ADMIN, "Admin User")
        ensure_catalog(db)
    finally:
        db.close()


if __name__ == "__main__":
    run()
