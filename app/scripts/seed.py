import logging
import os

from sqlmodel import Session, select

from app.core.security import get_password_hash
from app.database import create_db_and_tables, engine
from app.main import app  # noqa: F401  registers every table
from app.models.barber import Barber
from app.models.service import Service
from app.models.shop import Shop
from app.models.user import User
from app.services.schedule import DEFAULT_SCHEDULE, save_schedule


logger = logging.getLogger("app.scripts.seed")

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@barbershop.local")
BARBER_EMAIL = os.getenv("SEED_BARBER_EMAIL", "barber@barbershop.local")
SEED_PASSWORD = os.getenv("SEED_PASSWORD", "changeme123")


def _get_or_create_user(session: Session, email: str, name: str, role: str) -> User:
    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        return user

    user = User(name=name, email=email, role=role, password_hash=get_password_hash(SEED_PASSWORD))
    session.add(user)
    session.flush()
    logger.info("Created %s %s", role, email)
    return user


def main():
    create_db_and_tables()

    with Session(engine) as session:
        # 1) the shop (single location)
        if not session.exec(select(Shop)).first():
            session.add(Shop(name="Barbershop", address="1 Main Street"))
            logger.info("Created shop")

        # 2) admin and one barber
        _get_or_create_user(session, ADMIN_EMAIL, "Admin", "admin")
        barber_user = _get_or_create_user(session, BARBER_EMAIL, "Barber", "barber")

        barber = session.exec(select(Barber).where(Barber.user_id == barber_user.id)).first()
        if not barber:
            barber = Barber(user_id=barber_user.id, bio="Classic cuts and beard trims")
            session.add(barber)
            session.flush()

            # mon-sat 09:00-18:00, sunday off
            save_schedule(session, barber.id, dict(enumerate(DEFAULT_SCHEDULE.days)))
            logger.info("Created barber %s with the default schedule", barber.id)

        # 3) services (if none exist)
        if not session.exec(select(Service)).first():
            session.add_all(
                [
                    Service(name="Haircut", duration_minutes=30, price=100000, category="haircut"),
                    Service(name="Shave", duration_minutes=20, price=60000, category="shave"),
                    Service(name="Haircut + Shave", duration_minutes=50, price=150000, category="combo"),
                ]
            )
            logger.info("Created default services")

        session.commit()

        logger.info("Seed finished: barber %s (%s)", barber.id, BARBER_EMAIL)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
