"""
Parser per l'HAR registrato dal browser sul multi-calendario host di Airbnb.

Come esportare:
  Airbnb (host) → Calendario → Multi-calendario, scorrere i mesi,
  DevTools → Network → "Save all as HAR with content"

Nelle risposte JSON interessano due forme sotto data.patek:
  - getAdditionalReservationData.reservationResources[]
      → confirmationCode, hostPayoutFormatted, hostFacingStatus
  - getMultiCalendarListingsAndCalendars.hostCalendarsResponse.calendars[]
      → listingId, days[] con unavailabilityReasons.reservation (prenotazione)
        oppure una nota libera (notes / note / dayNotes / hostNotes)

Le entry non riconosciute vengono saltate; un documento che non è un HAR
oppure senza nessuna delle due forme è un errore (BulkExportError).
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from config import HAR_ALIAS_LISTINGS, HAR_LISTINGS, HAR_NOTE_FIELDS
from core.errors import BulkExportError
from core.models import CalendarFragment, NoteFragment, PayoutFragment

logger = logging.getLogger(__name__)


@dataclass
class ExtractedRecords:
    payouts: List[PayoutFragment] = field(default_factory=list)
    calendar: List[CalendarFragment] = field(default_factory=list)
    notes: List[NoteFragment] = field(default_factory=list)
    matched_entries: int = 0

    def __len__(self):
        return len(self.payouts) + len(self.calendar) + len(self.notes)


def _dig(obj, *keys):
    for k in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(k)
    return obj


def _as_list(x) -> list:
    if isinstance(x, list):
        return x
    return [x] if x else []


def _text(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _parse_day(value) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def decode_content_text(content) -> Optional[str]:
    """Testo della risposta, decodificato se base64."""
    if not isinstance(content, dict) or content.get("text") is None:
        return None
    text = content["text"]
    if not isinstance(text, str):
        return None
    if content.get("encoding") == "base64":
        try:
            return base64.b64decode(text).decode("utf-8")
        except (binascii.Error, ValueError):
            return None
    return text


def parse_json_content(content):
    """JSON della risposta se dichiarato tale o se "sembra" JSON, altrimenti None."""
    raw = decode_content_text(content)
    if not raw:
        return None
    stripped = raw.strip()
    mime = str(content.get("mimeType") or "").lower()
    if "json" not in mime and not stripped.startswith(("{", "[")):
        return None
    try:
        return json.loads(stripped)
    except ValueError:
        return None


def _resolve_listing(listing_id) -> tuple:
    """Returns: (id gîte o None, solo_prenotazioni)."""
    key = str(listing_id) if listing_id is not None else ""
    if key in HAR_LISTINGS:
        return HAR_LISTINGS[key], False
    if key in HAR_ALIAS_LISTINGS:
        return HAR_ALIAS_LISTINGS[key], True
    return None, False


def _guest_count(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def extract_from_entry(entry, out: ExtractedRecords) -> bool:
    """Aggiunge a `out` i frammenti di una entry. True se la entry contiene una forma nota."""
    data = parse_json_content(_dig(entry, "response", "content"))
    patek = _dig(data, "data", "patek")
    if not isinstance(patek, dict):
        return False
    matched = False

    resources = _dig(patek, "getAdditionalReservationData", "reservationResources")
    if isinstance(resources, list):
        matched = True
        for r in resources:
            code = _text(_dig(r, "confirmationCode"))
            if not code:
                continue
            out.payouts.append(PayoutFragment(
                confirmation_code=code,
                payout_text=_text(r.get("hostPayoutFormatted")),
                status_text=_text(r.get("hostFacingStatus")),
            ))

    calendars = _dig(patek, "getMultiCalendarListingsAndCalendars", "hostCalendarsResponse", "calendars")
    if isinstance(calendars, list):
        matched = True
        for cal in calendars:
            property_id, bookings_only = _resolve_listing(_dig(cal, "listingId"))
            if property_id is None:
                continue
            for day in _as_list(_dig(cal, "days")):
                if not isinstance(day, dict):
                    continue
                day_date = _parse_day(day.get("date") or day.get("day"))
                if day_date is None:
                    continue

                resa = _dig(day, "unavailabilityReasons", "reservation")
                code = _text(_dig(resa, "confirmationCode"))
                if code:
                    guest = resa.get("guestInfo") if isinstance(resa.get("guestInfo"), dict) else {}
                    out.calendar.append(CalendarFragment(
                        confirmation_code=code,
                        property_id=property_id,
                        day=day_date,
                        guest_first_name=_text(guest.get("firstName")),
                        guest_last_name=_text(guest.get("lastName")),
                        guest_count=_guest_count(resa.get("numberOfGuests")),
                    ))

                if bookings_only:
                    continue
                comment = next((day[f] for f in HAR_NOTE_FIELDS if _text(day.get(f))), None)
                if comment:
                    out.notes.append(NoteFragment(property_id=property_id, day=day_date, comment=comment))
    return matched


def load_har(raw) -> dict:
    """Accetta bytes/str/dict; il documento deve avere log.entries."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise BulkExportError(f"HAR non leggibile: {e}")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise BulkExportError(f"HAR non valido: {e}")
    if not isinstance(_dig(raw, "log", "entries"), list):
        raise BulkExportError("HAR non valido: manca log.entries")
    return raw


def extract_records(raw) -> ExtractedRecords:
    """
    Legge l'HAR e restituisce i frammenti grezzi (non fusi).
    Solleva BulkExportError se nessuna entry contiene dati del calendario.
    """
    har = load_har(raw)
    out = ExtractedRecords()
    for entry in har["log"]["entries"]:
        if extract_from_entry(entry, out):
            out.matched_entries += 1

    if out.matched_entries == 0:
        raise BulkExportError("Nessun dato del multi-calendario Airbnb trovato nell'HAR")
    logger.info(
        "HAR: %d entry utili, %d giorni prenotati, %d payout, %d note",
        out.matched_entries, len(out.calendar), len(out.payouts), len(out.notes),
    )
    return out
