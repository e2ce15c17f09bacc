"""
Controllo duplicati: classifica le prenotazioni fuse dall'HAR rispetto al foglio.

Ordine dei controlli per ogni prenotazione:
  1. gîte fuori elenco                 → unknown_property
  2. date assenti o non crescenti      → invalid
  3. arrivo fuori dall'anno del foglio → outside_year
  4. stessa riga (gîte, dal, al) già nel foglio:
       niente da completare → existing
       prezzo/commento mancanti nel foglio che l'HAR può fornire → *_missing
  5. riga nuova → new, oppure *_missing se mancano payout/commento

Se il foglio non risponde l'intera classificazione fallisce
(CanonicalStoreUnavailable): "non verificabile" non è "assente".
"""

import hashlib
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from core.models import Candidate, Classification, FusedReservation, ReservationType, StoredReservation

logger = logging.getLogger(__name__)


def candidate_id(res: FusedReservation) -> str:
    parts = [
        res.type.value, res.property_id,
        res.check_in.isoformat() if res.check_in else "",
        res.check_out.isoformat() if res.check_out else "",
        res.confirmation_code or "", res.comment or "",
    ]
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:12]


def _new_gaps(res: FusedReservation) -> tuple:
    """(manca prezzo, manca commento) per una riga da creare."""
    if res.type == ReservationType.PLATFORM:
        return res.payout_amount is None, not (res.guest_name or res.comment)
    return False, not (res.comment and res.comment.strip())


def _fillable_gaps(res: FusedReservation, match: StoredReservation) -> tuple:
    """(prezzo, commento) mancanti nel foglio che questa prenotazione può completare."""
    price_missing = not match.has_price and res.type == ReservationType.PLATFORM and res.payout_amount is not None
    comment_missing = not match.has_comment and bool(res.comment and res.comment.strip())
    return price_missing, comment_missing


def _refine(price_gap: bool, comment_gap: bool) -> Optional[Classification]:
    if price_gap and comment_gap:
        return Classification.PRICE_COMMENT_MISSING
    if price_gap:
        return Classification.PRICE_MISSING
    if comment_gap:
        return Classification.COMMENT_MISSING
    return None


def classify(res: FusedReservation, known_properties, year: int,
             existing: Optional[List[StoredReservation]]) -> tuple:
    """Returns: (classificazione, motivo, riga corrispondente o None)."""
    if res.property_id not in known_properties:
        return Classification.UNKNOWN_PROPERTY, f"gîte sconosciuto: {res.property_id}", None
    if res.check_in is None or res.check_out is None:
        return Classification.INVALID, "date mancanti", None
    if res.check_out <= res.check_in:
        return Classification.INVALID, "partenza non successiva all'arrivo", None
    if res.check_in.year != year:
        return Classification.OUTSIDE_YEAR, f"arrivo fuori dal {year}", None

    match = next((r for r in existing or [] if r.check_in == res.check_in and r.check_out == res.check_out), None)
    if match is not None:
        refined = _refine(*_fillable_gaps(res, match))
        if refined is None:
            return Classification.EXISTING, "già presente nel foglio", match
        return refined, "presente nel foglio, dati da completare", match

    refined = _refine(*_new_gaps(res))
    if refined is None:
        return Classification.NEW, "", None
    return refined, "nuova, dati incompleti", None


def classify_candidates(reservations: Iterable[FusedReservation], store, known_properties,
                        live_arrivals: Optional[set] = None) -> List[Candidate]:
    """
    Classifica tutte le prenotazioni (da chiamare solo a fusione completata).
    `store.lookup` viene chiamato una volta per gîte, sull'intero anno del foglio.
    """
    known_properties = set(known_properties)
    year = store.year
    cache: Dict[str, List[StoredReservation]] = {}
    candidates = []

    for res in reservations:
        existing = None
        if (res.property_id in known_properties and res.check_in is not None
                and res.check_out is not None and res.check_in.year == year):
            if res.property_id not in cache:
                cache[res.property_id] = store.lookup(res.property_id, (date(year, 1, 1), date(year, 12, 31)))
            existing = cache[res.property_id]

        classification, reason, match = classify(res, known_properties, year, existing)
        candidates.append(Candidate(
            id=candidate_id(res),
            reservation=res,
            classification=classification,
            reason=reason,
            match=match,
            in_live_feeds=bool(live_arrivals) and (res.property_id, res.check_in) in live_arrivals,
        ))

    logger.info("Classificate %d prenotazioni", len(candidates))
    return candidates


def count_by_classification(candidates: Iterable[Candidate]) -> Dict[str, int]:
    counts = {c.value: 0 for c in Classification}
    for cand in candidates:
        counts[cand.classification.value] += 1
    return counts


def count_by_property(candidates: Iterable[Candidate]) -> Dict[str, Dict[str, int]]:
    """Per gîte: {"new": importabili, "existing": già presenti}."""
    stats: Dict[str, Dict[str, int]] = {}
    for cand in candidates:
        s = stats.setdefault(cand.reservation.property_id, {"new": 0, "existing": 0})
        if cand.selectable:
            s["new"] += 1
        elif cand.classification == Classification.EXISTING:
            s["existing"] += 1
    return stats
