"""
A bus line between two places. Schedules are departures on a route.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String

from bus_booking.db.base import Base, TimestampMixin


class Route(Base, TimestampMixin):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    origin = Column(String(255), nullable=False, index=True)
    destination = Column(String(255), nullable=False, index=True)
    distance_km = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_route_duration_positive"),
        CheckConstraint("base_price >= 0", name="check_route_base_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Route(id={self.id}, {self.origin} -> {self.destination})>"
