"""
Normalizzazione degli intervalli iCal prima della pubblicazione.

Regole di business esplicite (testabili una per una):
  - filtro SUMMARY per feed (include_summary)
  - blocco "Airbnb (Not available)" → prenotazione diretta
  - finestra di rilevanza [oggi - 1, oggi + 7], ricalcolata a ogni ciclo
"""

from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from config import AIRBNB_TAG, DIRECT_MARKER, DIRECT_TAG, WINDOW_DAYS_AFTER, WINDOW_DAYS_BEFORE
from core.models import FeedEndpoint, RawInterval


def passes_summary_filter(endpoint: FeedEndpoint, summary: str) -> bool:
    """Per i feed con include_summary conta solo l'evento che contiene quel testo."""
    if not endpoint.include_summary:
        return True
    return endpoint.include_summary in (summary or "")


def is_direct_booking(interval: RawInterval) -> bool:
    """Airbnb esporta i blocchi manuali come "Airbnb (Not available)": sono affitti diretti."""
    return interval.source == AIRBNB_TAG and DIRECT_MARKER in (interval.summary or "")


def reclassify(interval: RawInterval) -> RawInterval:
    if is_direct_booking(interval):
        return replace(interval, source=DIRECT_TAG)
    return interval


def relevance_window(today: Optional[date] = None) -> Tuple[date, date]:
    today = today or date.today()
    return today - timedelta(days=WINDOW_DAYS_BEFORE), today + timedelta(days=WINDOW_DAYS_AFTER)


def in_window(interval: RawInterval, window: Tuple[date, date]) -> bool:
    window_start, window_end = window
    return interval.start < window_end and interval.end > window_start


def normalize(intervals: Iterable[RawInterval], today: Optional[date] = None) -> List[RawInterval]:
    """Riclassifica e poi filtra sulla finestra (la riclassificazione non cambia le date)."""
    window = relevance_window(today)
    reclassified = [reclassify(iv) for iv in intervals]
    return [iv for iv in reclassified if in_window(iv, window)]
