"""
User account. The role column feeds the `role` claim of issued tokens.
"""

from sqlalchemy import Column, Integer, String, Boolean

from bus_booking.db.base import Base, TimestampMixin
from bus_booking.models.enums import UserRole, status_column_type


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(32), nullable=True)
    role = Column(status_column_type(UserRole, "user_role"), nullable=False, default=UserRole.CUSTOMER)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
