import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models import appointment, availability  # noqa: E402,F401
from backend.models.course import Course, course_enrollments  # noqa: E402
from backend.models.enums import UserRole  # noqa: E402
from backend.models.user import User  # noqa: E402
from backend.scheduling.clock import FixedClock  # noqa: E402

# Sunday; the scheduling tests book on the following Monday, 2026-03-02
NOW = datetime(2026, 3, 1, 12, 0)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


def add_user(db, email: str, role: UserRole, full_name: str | None = None) -> User:
    user = User(email=email, role=role, full_name=full_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def lecturer(db) -> User:
    return add_user(db, 'lecturer@edulink.edu', UserRole.LECTURER, 'Dr. Ada Lovelace')


@pytest.fixture
def student(db) -> User:
    return add_user(db, 'student@edulink.edu', UserRole.STUDENT, 'Grace Hopper')


@pytest.fixture
def other_student(db) -> User:
    return add_user(db, 'other.student@edulink.edu', UserRole.STUDENT, 'Alan Turing')


@pytest.fixture
def admin(db) -> User:
    return add_user(db, 'admin@edulink.edu', UserRole.ADMIN, 'Registrar')


@pytest.fixture
def course(db, lecturer, student) -> Course:
    course = Course(code='CS101', name='Introduction to Computing', lecturer_id=lecturer.id)
    db.add(course)
    db.commit()
    db.execute(course_enrollments.insert().values(course_id=course.id, student_id=student.id))
    db.commit()
    db.refresh(course)
    return course
