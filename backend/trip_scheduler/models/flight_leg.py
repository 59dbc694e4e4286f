from sqlalchemy import String, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trip_scheduler.models.base import Base

class FlightLeg(Base):
    __tablename__ = "flight_legs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(64), ForeignKey("bookings.id", ondelete="CASCADE"), unique=True, index=True)
    airline_iata: Mapped[str | None] = mapped_column(String(3), nullable=True)
    flight_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    departure_airport: Mapped[str | None] = mapped_column(String(8), nullable=True)
    arrival_airport: Mapped[str | None] = mapped_column(String(8), nullable=True)
    # Kept exactly as the supplier returned it; the scheduler validates it per run.
    scheduled_departure: Mapped[str | None] = mapped_column(String(64), nullable=True)

    booking: Mapped["Booking"] = relationship(back_populates="flight_leg")
