"""
Schedule: one departure of a bus on a route, with its seat inventory.

Key design decisions:
- `available_seats` is a denormalized counter owned by the inventory ledger;
  it always equals total_seats minus the seats held in seat_allocations
- CHECK constraints keep the counter inside [0, total_seats] even if a
  buggy writer slips past the ledger
- `price` is copied into each booking at reservation time, so later price
  edits never touch existing bookings
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from bus_booking.db.base import Base, TimestampMixin
from bus_booking.models.enums import ScheduleStatus, status_column_type


class Schedule(Base, TimestampMixin):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    bus_number = Column(String(50), nullable=False)
    departure_time = Column(DateTime(timezone=True), nullable=False)
    arrival_time = Column(DateTime(timezone=True), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        status_column_type(ScheduleStatus, "schedule_status"),
        nullable=False,
        default=ScheduleStatus.SCHEDULED,
    )

    route = relationship("Route", lazy="selectin")

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="check_total_seats_positive"),
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="check_available_lte_total"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_schedules_departure_time", "departure_time"),
        Index("ix_schedules_status_departure", "status", "departure_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<Schedule(id={self.id}, route={self.route_id}, "
            f"available={self.available_seats}/{self.total_seats}, status={self.status})>"
        )
