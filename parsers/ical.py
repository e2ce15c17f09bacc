"""
Parser per i calendari iCal (.ics) esportati da Airbnb, Abritel e Gîtes de France.

Tutti i feed sono "free/busy": un VEVENT per periodo occupato, DTSTART incluso
e DTEND escluso (il giorno di DTEND è il giorno di partenza).
Gli eventi malformati vengono saltati, un documento illeggibile è un errore.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List
from zoneinfo import ZoneInfo

from icalendar import Calendar

from config import TIMEZONE
from core.models import RawInterval

logger = logging.getLogger(__name__)


def _to_local_date(value) -> date:
    """DATE → così com'è; DATE-TIME → giorno locale (un all-day a 22:00 UTC è il giorno dopo a Parigi)."""
    if hasattr(value, "dt"):
        value = value.dt
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(TIMEZONE))
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def parse_ical(text: str, property_id: str, source: str) -> List[RawInterval]:
    """
    Legge il testo iCal e restituisce gli intervalli occupati del gîte.
    Solleva ValueError se il testo non è un VCALENDAR.
    """
    if not text or "BEGIN:VCALENDAR" not in text:
        raise ValueError("risposta non in formato iCal")
    try:
        cal = Calendar.from_ical(text)
    except Exception as e:
        raise ValueError(f"Errore lettura iCal: {e}")

    intervals = []
    for component in cal.walk("VEVENT"):
        dtstart = component.get("dtstart")
        if dtstart is None:
            continue
        try:
            start = _to_local_date(dtstart)
            dtend = component.get("dtend")
            end = _to_local_date(dtend) if dtend is not None else start + timedelta(days=1)
        except (TypeError, ValueError) as e:
            logger.debug("VEVENT saltato (%s): %s", property_id, e)
            continue

        intervals.append(RawInterval(
            property_id=property_id,
            source=source,
            start=start,
            end=end,
            summary=str(component.get("summary", "")),
            uid=str(component.get("uid", "")),
        ))
    return intervals
