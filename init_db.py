"""
Create the progress engine tables and optionally load the demo curriculum.

Usage:
    python init_db.py            # create tables + demo users/module
    python init_db.py --no-seed  # tables only
    python init_db.py --migrate  # run alembic upgrade head instead of create_all
"""
import argparse
import logging

from app.db.base import engine, SessionLocal
from app.db.init_db import init_db
from app.models import Base

logging.basicConfig(level=logging.INFO)


def create_tables(migrate: bool) -> None:
    if migrate:
        from alembic import command
        from alembic.config import Config

        command.upgrade(Config("alembic.ini"), "head")
        print("✅ Migrations applied")
    else:
        Base.metadata.create_all(bind=engine)
        print(f"✅ Created {len(Base.metadata.tables)} tables")


def init(seed: bool = True, migrate: bool = False) -> None:
    """Initialize database."""
    create_tables(migrate)
    if not seed:
        return

    db = SessionLocal()
    try:
        init_db(db)
        print("✅ Demo users and module ready")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--no-seed", action="store_true", help="skip demo users and module")
    parser.add_argument("--migrate", action="store_true", help="use alembic migrations")
    args = parser.parse_args()
    init(seed=not args.no_seed, migrate=args.migrate)
