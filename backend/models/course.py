"""Course model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship

from backend.database import Base


course_enrollments = Table(
    "course_enrollments",
    Base.metadata,
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Course(Base):
    """A course taught by one lecturer with its enrolled students."""
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, index=True)
    name = Column(String, nullable=False)
    lecturer_id = Column(Integer, ForeignKey("users.id"), index=True)

    lecturer = relationship("User", foreign_keys=[lecturer_id])
    students = relationship("User", secondary=course_enrollments)
