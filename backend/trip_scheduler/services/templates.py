from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import html
import re

from trip_scheduler.schemas.trip import FlightSummary, NotificationKind


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    text: str
    sms: str

    @property
    def html(self) -> str:
        return _as_html(self.subject, self.text)


def _fmt(dt: datetime) -> str:
    return dt.strftime("%d %b %H:%M UTC")


def _short(url: str) -> str:
    return url.replace("https://", "").replace("http://", "")


_URL = re.compile(r"https?://\S+")


def _linkify(line: str) -> str:
    out, pos = [], 0
    for m in _URL.finditer(line):
        out.append(html.escape(line[pos:m.start()]))
        url = html.escape(m.group(0), quote=True)
        out.append(f'<a href="{url}">{url}</a>')
        pos = m.end()
    out.append(html.escape(line[pos:]))
    return "".join(out)


def _as_html(subject: str, text: str) -> str:
    paragraphs = "".join(f"<p>{_linkify(line)}</p>" for line in text.splitlines() if line.strip())
    return f"<html><body><h2>{html.escape(subject)}</h2>{paragraphs}</body></html>"


def trip_url(app_url: str, booking_id: str) -> str:
    return f"{app_url.rstrip('/')}/my-trips/{booking_id}"


def render(kind: NotificationKind, summary: FlightSummary, trip_link: str, check_in_url: Optional[str] = None) -> RenderedMessage:
    flight = summary.flight_label
    ref = summary.booking_reference
    dep = _fmt(summary.departure_at)
    where = f" from {summary.departure_airport}" if summary.departure_airport else ""
    check_in_line = f"Check in online: {check_in_url}\n" if check_in_url else ""

    if kind is NotificationKind.CHECK_IN_OPENS_SOON:
        opens = _fmt(summary.check_in_opens_at)
        return RenderedMessage(
            subject="Check-in opens soon for your flight",
            text=(
                f"Online check-in for {flight}{where} opens at {opens}.\n"
                f"Departure: {dep}.\n{check_in_line}"
                f"Booking reference: {ref}\nManage your trip: {trip_link}\n"
            ),
            sms=f"Check-in opens {opens}. Ref: {ref}. {_short(trip_link)}",
        )
    if kind is NotificationKind.CHECK_IN_OPEN:
        return RenderedMessage(
            subject="Check-in is now open for your flight",
            text=(
                f"Online check-in for {flight}{where} is now open.\n"
                f"Departure: {dep}.\n{check_in_line}"
                f"Booking reference: {ref}\nManage your trip: {trip_link}\n"
            ),
            sms=f"Check-in now open! Ref: {ref}. Check in: {_short(check_in_url or trip_link)}",
        )
    if kind is NotificationKind.SIX_HOUR_REMINDER:
        return RenderedMessage(
            subject="Your flight departs in 6 hours",
            text=(
                f"{flight}{where} departs at {dep}. Plan your trip to the airport "
                f"and allow time for security.\nBooking reference: {ref}\nTrack your trip: {trip_link}\n"
            ),
            sms=f"Flight {flight} departs {dep}. Leave time for the airport. {_short(trip_link)}",
        )
    if kind is NotificationKind.DEPARTURE_REMINDER:
        return RenderedMessage(
            subject="Flight reminder: leaving soon",
            text=(
                f"{flight}{where} departs at {dep}. Check the departure boards for your gate.\n"
                f"Booking reference: {ref}\nTrack your trip: {trip_link}\n"
            ),
            sms=f"Flight {flight} departs {dep}. Track: {_short(trip_link)}",
        )
    if kind is NotificationKind.TWO_HOUR_REMINDER:
        return RenderedMessage(
            subject="Your flight departs in 2 hours",
            text=(
                f"{flight}{where} departs at {dep}. Boarding usually closes 30-45 minutes before departure.\n"
                f"Booking reference: {ref}\nTrack your trip: {trip_link}\n"
            ),
            sms=f"{flight} departs in ~2h ({dep}). Head to your gate. {_short(trip_link)}",
        )
    raise ValueError(f"No template for notification kind {kind!r}")
