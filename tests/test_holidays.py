from datetime import date

import requests

from core.holidays import HolidayCalendar, holiday_dates, normalize_records, split_zones
from core.models import SchoolHoliday


class FakeJsonResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self.payload


class PagedSession:
    """Restituisce le pagine nell'ordine; registra i parametri di ogni chiamata."""

    def __init__(self, *pages):
        self.pages = list(pages)
        self.calls = []

    def get(self, url, params=None, timeout=None, headers=None):
        self.calls.append(dict(params))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


def record(zones, start="2025-10-18T00:00:00+02:00", end="2025-11-03T00:00:00+01:00", description="Toussaint"):
    return {"zones": zones, "start_date": start, "end_date": end, "description": description,
            "annee_scolaire": "2025-2026", "population": "Élèves"}


def test_zones_are_split_and_prefix_removed():
    assert split_zones("Zone A / Zone B et Zone C") == ["A", "B", "C"]
    assert split_zones("Corse") == ["Corse"]
    assert split_zones(None) == []


def test_records_become_one_holiday_per_zone():
    holidays = normalize_records([record("Zone A, Zone B"), record("Corse"), record("", description="Pont")],
                                 "2025-2026")

    assert [(h.zone, h.description) for h in holidays] == [("A", "Toussaint"), ("B", "Toussaint"), ("-", "Pont")]
    assert holidays[0].start == date(2025, 10, 18)
    assert holidays[0].end == date(2025, 11, 3)


def test_all_pages_are_read():
    session = PagedSession(
        FakeJsonResponse({"results": [record("Zone B")] * 2}),
        FakeJsonResponse({"results": [record("Zone A")]}),
    )
    calendar = HolidayCalendar(session=session, page_size=2)

    holidays = calendar.for_year(2025)

    assert len(holidays) == 3
    assert [c["offset"] for c in session.calls] == ["0", "2"]
    assert session.calls[0]["refine"] == "annee_scolaire:2025-2026"
    assert [h.zone for h in calendar.for_year(2025, zone="b")] == ["B", "B"]
    assert len(session.calls) == 2  # la seconda lettura viene dalla cache


def test_unavailable_api_returns_nothing_and_retries_later():
    session = PagedSession(
        requests.exceptions.ConnectionError("down"),
        FakeJsonResponse({"results": [record("Zone B")]}),
    )
    calendar = HolidayCalendar(session=session)

    assert calendar.for_year(2025) == []
    assert len(calendar.for_year(2025)) == 1


def test_holiday_dates_include_the_last_day():
    days = holiday_dates([SchoolHoliday("B", date(2025, 12, 20), date(2025, 12, 22))])

    assert days == {date(2025, 12, 20), date(2025, 12, 21), date(2025, 12, 22)}
