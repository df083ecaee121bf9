"""Seed a verified demo student with a health profile."""
from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from helpline import db  # noqa: E402
from helpline.config import get_settings  # noqa: E402
from helpline.schemas.health_profile import HealthProfileCreate  # noqa: E402
from helpline.schemas.user import EmailVerification, UserRegister  # noqa: E402
from helpline.services import accounts, health_profiles  # noqa: E402

DEMO_EMAIL = "demo.student@purdue.edu"


def main() -> None:
    settings = get_settings()
    print(f"Using database: {settings.database_url}")

    db.init_engine()
    session = db.get_sessionmaker()()

    try:
        if accounts.find_user_by_email(session, DEMO_EMAIL) is not None:
            print("Demo student already present.")
            return

        user = accounts.register_user(
            session,
            UserRegister(
                purdue_id="0030000001",
                email=DEMO_EMAIL,
                password="Boilermaker1!",
                first_name="Demo",
                last_name="Student",
                major="Computer Science",
                year="Sophomore",
            ),
        )
        user = accounts.verify_email(session, EmailVerification(email=DEMO_EMAIL))
        health_profiles.create_profile(
            session,
            user,
            HealthProfileCreate.model_validate(
                {
                    "dateOfBirth": "2005-09-01",
                    "bloodType": "A+",
                    "height": 170,
                    "weight": 65,
                    "allergies": [{"name": "Penicillin", "severity": "Severe"}],
                    "campusLocation": "Academic Campus",
                    "residence": "Wiley Hall",
                    "emergencyContacts": {
                        "primary": {"name": "Casey Student", "relationship": "Parent", "phone": "+17655550123"}
                    },
                }
            ),
        )
        print("Seed data inserted.")
    finally:
        session.close()
        db.close_engine()


if __name__ == "__main__":
    main()
