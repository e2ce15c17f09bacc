"""
Vacanze scolastiche francesi dal dataset pubblico "fr-en-calendrier-scolaire".

Un anno N corrisponde all'anno scolastico "N-N+1". Le pagine dell'API sono
lette fino all'ultima (meno di SCHOOL_HOLIDAYS_PAGE_SIZE risultati).
Le zone tipo "Zone A / Zone B" vengono separate, una voce per zona.
Un anno scaricato resta in cache; un errore restituisce [] senza memorizzarlo.
"""

import logging
import re
import threading
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set

import requests

from config import (
    FETCH_TIMEOUT_S,
    SCHOOL_HOLIDAYS_PAGE_SIZE,
    SCHOOL_HOLIDAYS_URL,
    SCHOOL_HOLIDAYS_ZONES,
    USER_AGENT,
)
from core.models import SchoolHoliday

logger = logging.getLogger(__name__)

_ZONE_SEPARATORS = re.compile(r"[/,;]| et ", re.IGNORECASE)
_ZONE_PREFIX = re.compile(r"zone\s*", re.IGNORECASE)


def split_zones(raw) -> List[str]:
    """"Zone A / Zone B" → ["A", "B"]."""
    parts = (p.strip() for p in _ZONE_SEPARATORS.split(str(raw or "")))
    return [_ZONE_PREFIX.sub("", p).strip() for p in parts if p]


def _day(value) -> Optional[date]:
    try:
        return date.fromisoformat(str(value or "")[:10])
    except ValueError:
        return None


def normalize_records(records: Iterable[dict], school_year: str,
                      zones: Iterable[str] = SCHOOL_HOLIDAYS_ZONES) -> List[SchoolHoliday]:
    zones = tuple(zones)
    holidays = []
    for item in records:
        start, end = _day(item.get("start_date")), _day(item.get("end_date"))
        if start is None or end is None:
            continue
        description = item.get("description") or item.get("vacances") or item.get("intitule") or ""
        for zone in split_zones(item.get("zones")) or [""]:
            if zone and zones and zone not in zones:
                continue
            holidays.append(SchoolHoliday(
                zone=zone or "-",
                start=start,
                end=end,
                description=description,
                school_year=item.get("annee_scolaire") or school_year,
                population=item.get("population") or "",
            ))
    return holidays


def holiday_dates(holidays: Iterable[SchoolHoliday]) -> Set[date]:
    """Tutti i giorni coperti, fine inclusa."""
    days = set()
    for h in holidays:
        d = h.start
        while d <= h.end:
            days.add(d)
            d += timedelta(days=1)
    return days


class HolidayCalendar:
    def __init__(self, session=None, url: str = SCHOOL_HOLIDAYS_URL,
                 page_size: int = SCHOOL_HOLIDAYS_PAGE_SIZE, timeout: float = FETCH_TIMEOUT_S):
        self.session = session or requests.Session()
        self.url = url
        self.page_size = page_size
        self.timeout = timeout
        self._cache: Dict[int, List[SchoolHoliday]] = {}
        self._lock = threading.Lock()

    def _fetch_rows(self, school_year: str) -> List[dict]:
        rows, offset = [], 0
        while True:
            params = [
                ("limit", str(self.page_size)),
                ("offset", str(offset)),
                ("order_by", "start_date"),
                ("refine", f"annee_scolaire:{school_year}"),
            ]
            response = self.session.get(self.url, params=params, timeout=self.timeout,
                                        headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            results = response.json().get("results")
            chunk = results if isinstance(results, list) else []
            rows.extend(chunk)
            if len(chunk) < self.page_size:
                return rows
            offset += self.page_size

    def fetch_year(self, year: int) -> List[SchoolHoliday]:
        school_year = f"{year}-{year + 1}"
        try:
            rows = self._fetch_rows(school_year)
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Vacanze scolastiche %s non disponibili: %s", school_year, e)
            return []
        holidays = normalize_records(rows, school_year)
        with self._lock:
            self._cache[year] = holidays
        logger.info("Vacanze scolastiche %s: %d voci da %d righe", school_year, len(holidays), len(rows))
        return holidays

    def for_year(self, year: int, zone: Optional[str] = None) -> List[SchoolHoliday]:
        """Voci dell'anno (scaricate alla prima richiesta), filtrate per zona se indicata."""
        holidays = self._cache.get(year)
        if holidays is None:
            holidays = self.fetch_year(year)
        if zone:
            zone = zone.upper()
            return [h for h in holidays if h.zone == zone]
        return list(holidays)
