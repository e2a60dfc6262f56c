"""User model definitions."""

from sqlalchemy import Column, Enum, Integer, String

from backend.database import Base
from backend.models.enums import UserRole


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(Enum(UserRole, native_enum=False, length=16), nullable=False)  # student/lecturer/admin

    @property
    def display_name(self) -> str:
        return self.full_name or self.email
