"""
Modelli dati: gîtes e feed, intervalli iCal, eventi giornalieri,
frammenti estratti dall'HAR e prenotazioni fuse da riconciliare.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FeedEndpoint:
    """Un calendario iCal di un gîte su una piattaforma."""
    url: str
    source: str                            # "Airbnb" | "Abritel" | "Gites de France"
    include_summary: Optional[str] = None  # conta solo eventi con questo testo nel SUMMARY


@dataclass(frozen=True)
class Property:
    id: str
    name: str
    endpoints: tuple = ()
    color: str = ""


@dataclass(frozen=True)
class RawInterval:
    """Un periodo occupato letto da un feed iCal (end esclusivo)."""
    property_id: str
    source: str
    start: date
    end: date
    summary: str = ""
    uid: str = ""

    @property
    def identity(self):
        # Senza UID l'intervallo stesso fa da identità
        return self.uid or (self.property_id, self.source, self.start, self.end, self.summary)


class EventKind(str, Enum):
    ARRIVAL = "arrival"
    DEPARTURE = "departure"
    TURNOVER = "turnover"
    SAME_DAY = "same_day"


@dataclass(frozen=True)
class ReservationEvent:
    """Evento di un giorno per un gîte: arrivo, partenza o cambio ospiti."""
    property_id: str
    day: date
    kind: EventKind
    intervals: tuple = ()


@dataclass
class FetchReport:
    """Esito di un ciclo di fetch di tutti i feed."""
    intervals: list = field(default_factory=list)
    unavailable: set = field(default_factory=set)
    errors: dict = field(default_factory=dict)       # url → messaggio
    retry_after: dict = field(default_factory=dict)  # url → header Retry-After


# ─── Frammenti HAR ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PayoutFragment:
    """getAdditionalReservationData: payout e stato di una prenotazione."""
    confirmation_code: str
    payout_text: Optional[str] = None
    status_text: Optional[str] = None


@dataclass(frozen=True)
class CalendarFragment:
    """Un giorno del multi-calendario occupato da una prenotazione Airbnb."""
    confirmation_code: str
    property_id: str
    day: date
    guest_first_name: Optional[str] = None
    guest_last_name: Optional[str] = None
    guest_count: Optional[int] = None


@dataclass(frozen=True)
class NoteFragment:
    """Nota personale dell'host su un singolo giorno."""
    property_id: str
    day: date
    comment: str


# ─── Riconciliazione ─────────────────────────────────────────────────────────

class ReservationType(str, Enum):
    PLATFORM = "platform"
    PERSONAL = "personal"


class Classification(str, Enum):
    NEW = "new"
    EXISTING = "existing"
    PRICE_MISSING = "price_missing"
    COMMENT_MISSING = "comment_missing"
    PRICE_COMMENT_MISSING = "price_comment_missing"
    OUTSIDE_YEAR = "outside_year"
    INVALID = "invalid"
    UNKNOWN_PROPERTY = "unknown_property"


# Classi importabili su conferma dell'utente
SELECTABLE = frozenset({
    Classification.NEW,
    Classification.PRICE_MISSING,
    Classification.COMMENT_MISSING,
    Classification.PRICE_COMMENT_MISSING,
})


@dataclass
class FusedReservation:
    """Prenotazione ricostruita dall'HAR (check_out esclusivo)."""
    type: ReservationType
    property_id: str
    check_in: Optional[date]
    check_out: Optional[date]
    nights: int
    guest_name: Optional[str] = None
    payout_amount: Optional[float] = None
    comment: Optional[str] = None
    confirmation_code: Optional[str] = None
    guest_count: Optional[int] = None
    status_text: Optional[str] = None


@dataclass(frozen=True)
class StoredReservation:
    """Riga già presente nel foglio di un gîte."""
    check_in: date
    check_out: date
    has_price: bool
    has_comment: bool
    row: int = 0


@dataclass
class Candidate:
    """Prenotazione fusa + classificazione, proposta all'utente."""
    id: str
    reservation: FusedReservation
    classification: Classification
    reason: str = ""
    match: Optional[StoredReservation] = None
    in_live_feeds: bool = False

    @property
    def selectable(self) -> bool:
        return self.classification in SELECTABLE


@dataclass
class ImportPreview:
    generated_at: datetime
    candidates: list
    counts_by_classification: dict
    counts_by_property: dict


@dataclass
class CommitResult:
    inserted: int = 0
    updated: int = 0
    skipped_duplicates: int = 0
    failures: list = field(default_factory=list)  # (candidate_id, messaggio)
    rejected: list = field(default_factory=list)  # (candidate_id, motivo): non importabili, mai scritti


@dataclass(frozen=True)
class ArrivalsWindow:
    generated_at: datetime
    reservations: tuple
    unavailable_properties: tuple
    dates: tuple = ()


@dataclass(frozen=True)
class ReloadResult:
    success: bool
    error: Optional[str] = None
    unavailable_properties: tuple = ()


# ─── Vacanze scolastiche e tariffe ───────────────────────────────────────────

@dataclass(frozen=True)
class SchoolHoliday:
    """Un periodo del calendario scolastico francese (date incluse) per una zona."""
    zone: str
    start: date
    end: date
    description: str = ""
    school_year: str = ""
    population: str = ""


@dataclass
class PriceRule:
    """Tariffa proposta di default per i gîtes elencati."""
    amount: float
    gites: list = field(default_factory=list)
