"""Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database. Tests that fan work out
to other threads (reports, the local ledger client, the API) use a file
database under tmp_path instead.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings as app_settings
from app.core.progress import ProgressLedger
from app.models import Base, Module, Part, Unit, User

# Wednesday
START = datetime(2024, 3, 13, 10, 0, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> Callable[[], Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path) -> Callable[[], Session]:
    """File-backed database for tests that use worker threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'engine.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def test_settings():
    """Application settings with fast retries."""
    return app_settings.model_copy(update={
        "LEDGER_RETRY_BACKOFF_SECONDS": 0.1,
        "LEDGER_MAX_RETRIES": 2,
        "HEARTBEAT_BACKOFF_SECONDS": 0.5,
        "HEARTBEAT_MAX_RETRIES": 3,
        "HEARTBEAT_FLUSH_EVERY": 10,
        "COMPLETION_MAX_RETRIES": 3,
    })


# =============================================================================
# Users and curriculum
# =============================================================================


def create_user(db: Session, username: str, role: str = "student",
                class_grade: Optional[str] = "6", is_active: bool = True) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        full_name=username.replace("_", " ").title(),
        role=role,
        class_grade=class_grade if role == "student" else None,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


UnitSpec = Tuple[str, Sequence[Tuple[str, str, Optional[int]]]]


def create_module(db: Session, name: str, units: Sequence[UnitSpec],
                  published: bool = True, grade_level: str = "6") -> Dict[str, Any]:
    """
    Create a module from (unit_name, [(title, part_type, duration_minutes), ...]) specs.

    Returns:
        Dict with the module, its units in order and a title -> part map
    """
    module = Module(module_name=name, grade_level=grade_level, is_published=published)
    created_units: List[Unit] = []
    for unit_order, (unit_name, parts) in enumerate(units, start=1):
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
        created_units.append(unit)
    db.add(module)
    db.commit()
    db.refresh(module)
    return {
        "module": module,
        "units": created_units,
        "parts": {p.title: p for u in created_units for p in u.parts},
    }


@pytest.fixture
def student(db) -> User:
    return create_user(db, "student")


@pytest.fixture
def other_student(db) -> User:
    return create_user(db, "other_student")


@pytest.fixture
def teacher(db) -> User:
    return create_user(db, "teacher", role="teacher")


@pytest.fixture
def course(db) -> Dict[str, Any]:
    """
    Two-unit module:
    - Numbers: Part A (reading), Part B (video)
    - Fractions: Part C (reading), Part D (assignment)
    """
    return create_module(db, "Mathematics", [
        ("Numbers", [("Part A", "reading", 10), ("Part B", "video", 10)]),
        ("Fractions", [("Part C", "reading", 10), ("Part D", "assignment", None)]),
    ])


@pytest.fixture
def ledger(db, clock, test_settings) -> ProgressLedger:
    return ProgressLedger(db, settings=test_settings, clock=clock, sleep=lambda _: None)


@pytest.fixture
def make_user(db) -> Callable[..., User]:
    def _make(username: str, **kwargs: Any) -> User:
        return create_user(db, username, **kwargs)
    return _make


@pytest.fixture
def make_module(db) -> Callable[..., Dict[str, Any]]:
    def _make(name: str, units: Sequence[UnitSpec], **kwargs: Any) -> Dict[str, Any]:
        return create_module(db, name, units, **kwargs)
    return _make
