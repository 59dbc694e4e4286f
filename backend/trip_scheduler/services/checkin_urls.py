from typing import Dict, Optional
from urllib.parse import urlencode

# Carrier IATA code -> online check-in page
AIRLINE_CHECKIN_URLS: Dict[str, str] = {
    "QF": "https://www.qantas.com/au/en/manage-booking/check-in.html",
    "VA": "https://www.virginaustralia.com/au/en/bookings/manage/check-in/",
    "JQ": "https://www.jetstar.com/au/en/manage-booking",
    "SQ": "https://www.singaporeair.com/en_au/us/travel-info/check-in/",
    "CX": "https://www.cathaypacific.com/cx/en_AU/manage-booking/check-in.html",
    "EK": "https://www.emirates.com/au/english/manage-booking/check-in/",
    "EY": "https://www.etihad.com/en-us/manage/check-in",
    "AA": "https://www.aa.com/reservation/findReservation",
    "UA": "https://www.united.com/en/us/checkin",
    "DL": "https://www.delta.com/check-in",
    "BA": "https://www.britishairways.com/en-gb/information/check-in/online-check-in",
    "LH": "https://www.lufthansa.com/online/checkin",
}


def resolve_check_in_url(airline_iata: Optional[str], pnr: Optional[str] = None) -> Optional[str]:
    """Return the carrier's check-in page, with the PNR appended when known."""
    if not airline_iata:
        return None
    base = AIRLINE_CHECKIN_URLS.get(airline_iata.strip().upper())
    if not base:
        return None
    if pnr:
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}{urlencode({'pnr': pnr})}"
    return base
