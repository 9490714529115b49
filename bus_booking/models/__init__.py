from bus_booking.models.user import User
from bus_booking.models.route import Route
from bus_booking.models.schedule import Schedule
from bus_booking.models.booking import Booking, SeatAllocation
from bus_booking.models.payment import Payment

__all__ = ["User", "Route", "Schedule", "Booking", "SeatAllocation", "Payment"]
