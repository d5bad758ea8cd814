"""
Database initialization and seeding.
"""
import logging

from sqlalchemy.orm import Session

from app.models.curriculum import Module, Unit, Part
from app.models.user import User

logger = logging.getLogger(__name__)

DEMO_UNITS = [
    ("Numbers and Operations", [
        ("Whole numbers", "reading", 15),
        ("Place value", "video", 10),
        ("Operations quiz", "assignment", 20),
    ]),
    ("Fractions", [
        ("What is a fraction?", "reading", 15),
        ("Comparing fractions", "presentation", 12),
        ("Fractions assignment", "assignment", 25),
    ]),
    ("Decimals", [
        ("Decimal notation", "video", 10),
        ("Decimals assignment", "assignment", 25),
    ]),
]


def init_db(db: Session) -> None:
    """
    Initialize database with default data.

    Args:
        db: Database session
    """
    # Check if admin user exists
    admin = db.query(User).filter(User.email == "admin@example.com").first()
    if not admin:
        admin = User(
            email="admin@example.com",
            username="admin",
            full_name="System Administrator",
            role="admin",
            is_active=True,
        )
        db.add(admin)
        db.add(User(
            email="teacher@example.com",
            username="teacher",
            full_name="Demo Teacher",
            role="teacher",
            is_active=True,
        ))
        db.add(User(
            email="student@example.com",
            username="student",
            full_name="Demo Student",
            role="student",
            class_grade="6",
            section="A",
            is_active=True,
        ))
        db.commit()
        logger.info("Demo users created")

    if not db.query(Module).first():
        module = Module(
            module_name="Grade 6 Mathematics",
            description="Numbers, fractions and decimals",
            grade_level="6",
            is_published=True,
        )
        for unit_order, (unit_name, parts) in enumerate(DEMO_UNITS, start=1):
            unit = Unit(unit_name=unit_name, unit_order=unit_order)
            for display_order, (title, part_type, minutes) in enumerate(parts, start=1):
                unit.parts.append(Part(
                    title=title,
                    part_type=part_type,
                    duration_minutes=minutes,
                    display_order=display_order,
                    is_active=True,
                ))
            module.units.append(unit)
        db.add(module)
        db.commit()
        logger.info("Demo module created")
