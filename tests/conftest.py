"""Fixture condivise: feed iCal finti, sessione HTTP finta, HAR e fogli Google finti."""

import base64
import json
from datetime import date

import pytest

from core.models import StoredReservation


# ─── iCal ────────────────────────────────────────────────────────────────────

def make_ics(*events) -> str:
    """events: tuple (uid, dtstart, dtend, summary); date → VALUE=DATE, str → copiato così com'è."""
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//test//gites//EN"]
    for uid, start, end, summary in events:
        lines.append("BEGIN:VEVENT")
        if uid:
            lines.append(f"UID:{uid}")
        for name, value in (("DTSTART", start), ("DTEND", end)):
            if value is None:
                continue
            if isinstance(value, date):
                lines.append(f"{name};VALUE=DATE:{value:%Y%m%d}")
            else:
                lines.append(f"{name}:{value}")
        lines.append(f"SUMMARY:{summary}")
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


class FakeResponse:
    def __init__(self, text="", status_code=200, headers=None):
        self.text = text
        self.status_code = status_code
        self.headers = headers or {}


class FakeSession:
    """url → FakeResponse oppure eccezione da sollevare."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append((url, headers, timeout))
        outcome = self.routes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def ics():
    return make_ics


# ─── HAR ─────────────────────────────────────────────────────────────────────

def har_entry(payload, mime="application/json", b64=False):
    text = json.dumps(payload)
    content = {"mimeType": mime, "text": text}
    if b64:
        content["text"] = base64.b64encode(text.encode("utf-8")).decode("ascii")
        content["encoding"] = "base64"
    return {"request": {"url": "https://www.airbnb.fr/api/v3/x"}, "response": {"status": 200, "content": content}}


def calendar_payload(listing_id, days):
    return {"data": {"patek": {"getMultiCalendarListingsAndCalendars": {
        "hostCalendarsResponse": {"calendars": [{"listingId": listing_id, "days": days}]}
    }}}}


def reservation_day(day, code, first=None, last=None, guests=None):
    reservation = {"confirmationCode": code, "guestInfo": {"firstName": first, "lastName": last}}
    if guests is not None:
        reservation["numberOfGuests"] = guests
    return {"date": day, "unavailabilityReasons": {"reservation": reservation}}


def payout_payload(*resources):
    return {"data": {"patek": {"getAdditionalReservationData": {"reservationResources": list(resources)}}}}


def make_har(*entries) -> dict:
    return {"log": {"version": "1.2", "entries": list(entries)}}


# ─── Google Sheets ───────────────────────────────────────────────────────────

class FakeWorksheet:
    def __init__(self, rows=None):
        self.values = [["Nome", "Dal", "Al", "", "", "", "Prezzo", "", "", "Commento"]] + [list(r) for r in rows or []]
        self.inserted = []
        self.updated = []
        self.formatted = []
        self.fail_next = []

    def _maybe_fail(self):
        if self.fail_next:
            raise self.fail_next.pop(0)

    def get_all_values(self):
        self._maybe_fail()
        return [list(r) for r in self.values]

    def update_cell(self, row, col, value):
        self._maybe_fail()
        self.updated.append((row, col, value))
        line = self.values[row - 1]
        line.extend([""] * (col - len(line)))
        line[col - 1] = value

    def insert_row(self, values, index=1, value_input_option=None):
        self._maybe_fail()
        self.inserted.append((index, list(values)))
        self.values.insert(index - 1, list(values))

    def format(self, rng, fmt):
        self.formatted.append((rng, fmt))


class FakeSpreadsheet:
    def __init__(self, sheets):
        self.sheets = sheets

    def worksheet(self, title):
        return self.sheets[title]


def sheet_row(name, start, end, price="", comment=""):
    return [name, start, end, "", "", "", price, "", "", comment]


class FakeCanonicalStore:
    """Archivio canonico in memoria con la stessa interfaccia di SheetsStore."""

    def __init__(self, year=2025, rows=None, error=None):
        self.year = year
        self.rows = rows or {}
        self.error = error
        self.lookups = []
        self.commits = []
        self.saved = []

    def lookup(self, property_id, date_range):
        self.lookups.append((property_id, date_range))
        if self.error:
            raise self.error
        start, end = date_range
        return [r for r in self.rows.get(property_id, []) if start <= r.check_in <= end]

    def insert_or_update(self, candidates, price_overrides=None, comment_overrides=None):
        from core.models import CommitResult
        candidates = list(candidates)
        self.commits.append((candidates, price_overrides, comment_overrides))
        return CommitResult(inserted=sum(1 for c in candidates if c.match is None),
                            updated=sum(1 for c in candidates if c.match is not None))

    def save_reservation(self, property_id, name, check_in, check_out, comment=None, price=None):
        self.saved.append((property_id, name, check_in, check_out, comment, price))
        return len(self.saved) + 1


def stored(check_in, check_out, has_price=True, has_comment=True, row=2):
    return StoredReservation(check_in, check_out, has_price, has_comment, row)
