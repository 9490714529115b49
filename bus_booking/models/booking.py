"""
Booking and the seat allocation ledger.

Key design decisions:
- A booking never gets deleted; cancellation is a status change
- `seat_numbers` is the customer's view of the booking and is kept forever
- `seat_allocations` holds one row per seat currently held by a PENDING or
  CONFIRMED booking. The unique (schedule_id, seat_number) constraint is what
  makes double-allocation impossible, whatever the isolation level. Rows are
  deleted when the booking is cancelled
- `total_amount` is fixed at reservation time (price x seats)
"""

from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint

from bus_booking.db.base import Base, TimestampMixin
from bus_booking.models.enums import BookingStatus, status_column_type


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    seat_numbers = Column(JSON, nullable=False)
    seat_count = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        status_column_type(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    __table_args__ = (
        CheckConstraint("seat_count > 0", name="check_booking_seat_count_positive"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        Index("ix_bookings_schedule_status", "schedule_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, schedule={self.schedule_id}, status={self.status})>"


class SeatAllocation(Base):
    __tablename__ = "seat_allocations"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    seat_number = Column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_number", name="uq_schedule_seat_allocation"),
    )

    def __repr__(self) -> str:
        return f"<SeatAllocation(schedule={self.schedule_id}, seat={self.seat_number}, booking={self.booking_id})>"
