import logging

from sqlalchemy.orm import Session

from auth.utils import hash_password, normalize_email
from config import settings
from db.database import SessionLocal
from db.models import User
from services.seed_service import DEMO_HEIGHT, seed_demo_data

logger = logging.getLogger(__name__)

DEMO_ALERT_THRESHOLDS = {
    "max_heart_rate": 95,
    "min_heart_rate": 45,
    "min_steps": 8000,
    "max_calories": 3000,
}


def ensure_demo_account() -> None:
    """Create the demo user named by DEMO_USER_EMAIL and seed it when configured."""
    email = normalize_email(settings.DEMO_USER_EMAIL or "")
    if not email:
        return

    db: Session = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(
                email=email,
                name=(settings.DEMO_USER_NAME or "Demo").strip() or "Demo",
                password_hash=hash_password(settings.DEMO_USER_PASSWORD),
                token_version=0,
                height=DEMO_HEIGHT,
                gender="männlich",
                activity_level="active",
                health_goal="muskelaufbau",
                target_weight=78,
                custom_alert_thresholds=dict(DEMO_ALERT_THRESHOLDS),
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info(f"Created demo account {email}")

        inserted = seed_demo_data(db, user.id, settings.DEMO_SEED_DAYS)
        if inserted:
            logger.info(f"Seeded {inserted} demo health records")
    finally:
        db.close()
