from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional

from trip_scheduler.models.base import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    booking_reference: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    supplier_reference: Mapped[str | None] = mapped_column(String(32), nullable=True)  # airline PNR
    status: Mapped[str] = mapped_column(String(32), default="pending", index=True)  # pending, paid, booked, ticketed, cancelled, refunded
    passenger_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    sms_opt_in: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    # Notification ledger: one sent-at marker per reminder kind. Only the
    # scheduler writes these, and only null -> timestamp.
    checkin_opens_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checkin_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    six_hour_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    departure_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    two_hour_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    flight_leg: Mapped[Optional["FlightLeg"]] = relationship(back_populates="booking", uselist=False, lazy="joined")
