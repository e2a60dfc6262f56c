"""Read-only lookups against the user and course tables."""

from sqlalchemy import exists
from sqlalchemy.orm import Session

from backend.models.course import Course, course_enrollments
from backend.models.enums import UserRole
from backend.models.user import User
from backend.scheduling.errors import NotFoundError, ValidationError


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(f'User not found: {user_id}')
    return user


def require_role(db: Session, user_id: int, role: UserRole) -> User:
    user = get_user(db, user_id)
    if user.role != role:
        raise ValidationError(f'Specified user is not a {role.value.lower()}: {user_id}')
    return user


def get_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFoundError(f'Course not found: {course_id}')
    return course


def is_lecturer_of_course(db: Session, course_id: int, lecturer_id: int) -> bool:
    return get_course(db, course_id).lecturer_id == lecturer_id


def is_student_enrolled(db: Session, course_id: int, student_id: int) -> bool:
    return db.query(
        exists().where(
            course_enrollments.c.course_id == course_id,
            course_enrollments.c.student_id == student_id,
        )
    ).scalar()
