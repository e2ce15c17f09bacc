"""
Fusione dei frammenti HAR in prenotazioni complete.

Prenotazioni Airbnb, raggruppate per confirmationCode:
  - date: insieme dei giorni visti → check-in = minimo, check-out = massimo + 1
  - notti = numero di giorni visti (un buco nelle date resta visibile)
  - nome/cognome: primo frammento che li fornisce (in ordine di giorno)
  - numero ospiti: massimo visto
  - payout/stato: dai frammenti getAdditionalReservationData
Note personali, raggruppate per (gîte, testo ESATTO):
  - una prenotazione "personal" per ogni sequenza di giorni consecutivi
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from core.models import (
    CalendarFragment,
    FusedReservation,
    NoteFragment,
    PayoutFragment,
    ReservationType,
)

logger = logging.getLogger(__name__)

_DOT_DECIMAL = re.compile(r"\.\d{1,2}$")


def parse_payout(text) -> Optional[float]:
    """
    Converte un importo formattato in numero, None se non interpretabile.
      "1 234,50 €" → 1234.5   "250,75 €" → 250.75   "1200.00" → 1200.0   "n/a" → None
    Euristica: con una virgola e senza ".dd" finale l'ultima virgola è il separatore decimale.
    """
    if text is None:
        return None
    raw = re.sub(r"[^\d,.\-]", "", str(text)).strip()
    if not raw:
        return None

    if "," in raw and not _DOT_DECIMAL.search(raw):
        last_comma = raw.rfind(",")
        head = re.sub(r"[.,]", "", raw[:last_comma])
        tail = raw[last_comma + 1:]
        candidate = f"{head}.{tail}"
    else:
        candidate = raw.replace(",", "")
    try:
        return float(candidate)
    except ValueError:
        return None


@dataclass
class _BookingAccumulator:
    property_id: Optional[str] = None
    days: set = field(default_factory=set)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    guest_count: Optional[int] = None
    payout_text: Optional[str] = None
    status_text: Optional[str] = None


def _full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    name = " ".join(p.strip() for p in (first, last) if p and p.strip())
    return name or None


def fuse_platform_bookings(calendar: Iterable[CalendarFragment],
                           payouts: Iterable[PayoutFragment] = ()) -> List[FusedReservation]:
    """
    Riduce i frammenti per confirmationCode.
    Il risultato non dipende dall'ordine dei frammenti: i campi "primo che vince"
    sono presi in ordine di giorno, payout/stato in ordine di testo.
    """
    acc = defaultdict(_BookingAccumulator)

    for frag in sorted(calendar, key=lambda f: (f.day, f.property_id, f.guest_first_name or "", f.guest_last_name or "")):
        a = acc[frag.confirmation_code]
        if a.property_id is None:
            a.property_id = frag.property_id
        a.days.add(frag.day)
        if a.first_name is None and frag.guest_first_name:
            a.first_name = frag.guest_first_name
        if a.last_name is None and frag.guest_last_name:
            a.last_name = frag.guest_last_name
        if frag.guest_count is not None:
            a.guest_count = frag.guest_count if a.guest_count is None else max(a.guest_count, frag.guest_count)

    for frag in sorted(payouts, key=lambda f: (f.payout_text or "", f.status_text or "")):
        a = acc[frag.confirmation_code]
        if frag.payout_text:
            a.payout_text = frag.payout_text
        if frag.status_text:
            a.status_text = frag.status_text

    fused = []
    for code in sorted(acc):
        a = acc[code]
        if a.property_id is None:
            logger.debug("Prenotazione %s senza gîte (solo payout): ignorata", code)
            continue
        days = sorted(a.days)
        fused.append(FusedReservation(
            type=ReservationType.PLATFORM,
            property_id=a.property_id,
            check_in=days[0] if days else None,
            check_out=days[-1] + timedelta(days=1) if days else None,
            nights=len(days),
            guest_name=_full_name(a.first_name, a.last_name),
            payout_amount=parse_payout(a.payout_text),
            confirmation_code=code,
            guest_count=a.guest_count,
            status_text=a.status_text,
        ))
    return fused


def contiguous_runs(days: Iterable[date]) -> List[Tuple[date, date]]:
    """Sequenze massimali di giorni consecutivi: [(primo, ultimo), ...]."""
    ordered = sorted(set(days))
    if not ordered:
        return []
    runs = []
    start = prev = ordered[0]
    for d in ordered[1:]:
        if d != prev + timedelta(days=1):
            runs.append((start, prev))
            start = d
        prev = d
    runs.append((start, prev))
    return runs


def fuse_personal_notes(notes: Iterable[NoteFragment]) -> List[FusedReservation]:
    """Testi diversi non vengono mai uniti, anche se su giorni adiacenti."""
    buckets = defaultdict(set)
    for n in notes:
        if n.property_id and n.day and isinstance(n.comment, str):
            buckets[(n.property_id, n.comment)].add(n.day)

    results = []
    for (property_id, comment), days in sorted(buckets.items(), key=lambda kv: (kv[0][0], min(kv[1]), kv[0][1])):
        for first, last in contiguous_runs(days):
            check_out = last + timedelta(days=1)
            results.append(FusedReservation(
                type=ReservationType.PERSONAL,
                property_id=property_id,
                check_in=first,
                check_out=check_out,
                nights=(check_out - first).days,
                comment=comment,
            ))
    return results


def clean_comment(comment: Optional[str]) -> Optional[str]:
    """Una riga sola, spazi compattati (come va scritto nel foglio)."""
    if not isinstance(comment, str):
        return None
    return re.sub(r"\s{2,}", " ", re.sub(r"\r?\n", " ", comment)).strip() or None
