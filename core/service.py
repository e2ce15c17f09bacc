"""
Operazioni esposte all'interfaccia:

  - list_arrivals_window()  → prenotazioni della finestra + gîtes non disponibili
  - reload_feeds()          → nuovo ciclo di fetch, pubblicato solo a ciclo finito
  - preview_bulk_import()   → HAR → fusione → classificazione (nessuna scrittura)
  - commit_bulk_import()    → scrive sul foglio i candidati scelti dall'utente
  - save_reservation()      → inserimento manuale di una prenotazione nel foglio
  - school_holidays()       → vacanze scolastiche di un anno/zona
  - prices() / save_prices() → tariffe di default per gîte

Lo snapshot conserva tutti gli intervalli (già riclassificati): la finestra
di rilevanza è applicata a ogni lettura, rispetto alla data del momento.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from config import GITES, LAST_HAR_FILE, SCHOOL_HOLIDAYS_DEFAULT_ZONE
from core.deduplicator import classify_candidates, count_by_classification, count_by_property
from core.errors import BulkExportError, UnknownCandidateError
from core.fetcher import FeedFetcher
from core.fusion import fuse_personal_notes, fuse_platform_bookings
from core.holidays import HolidayCalendar
from core.models import (
    ArrivalsWindow,
    Classification,
    CommitResult,
    ImportPreview,
    ReloadResult,
    ReservationType,
)
from core.normalizer import in_window, reclassify, relevance_window
from core.sheets import open_canonical_store
from core.status_store import ImportLog, PriceStore
from core.store import ReservationStore, Snapshot
from core.turnover import merge_turnovers
from parsers.har import extract_records

logger = logging.getLogger(__name__)

# Sentinella per riusare l'ultimo HAR caricato
USE_LAST_UPLOADED = "use-last-uploaded"


class CalendarService:
    def __init__(self, properties=GITES, fetcher: Optional[FeedFetcher] = None,
                 store: Optional[ReservationStore] = None,
                 canonical_store_factory: Optional[Callable] = None,
                 import_log: Optional[ImportLog] = None,
                 price_store: Optional[PriceStore] = None,
                 holidays: Optional[HolidayCalendar] = None,
                 last_har_path: str = LAST_HAR_FILE,
                 today: Callable[[], date] = date.today):
        self.properties = tuple(properties)
        self.fetcher = fetcher or FeedFetcher(self.properties)
        self.store = store or ReservationStore()
        self._canonical_store_factory = canonical_store_factory
        self.import_log = import_log or ImportLog()
        self.price_store = price_store or PriceStore()
        self.holidays = holidays or HolidayCalendar()
        self.last_har_path = Path(last_har_path)
        self._today = today
        self._last_preview: Optional[ImportPreview] = None

    @property
    def property_ids(self) -> List[str]:
        return [p.id for p in self.properties]

    def canonical_store(self):
        factory = self._canonical_store_factory or open_canonical_store
        return factory()

    # ─── feed iCal ──────────────────────────────────────────────────────────

    def reload_feeds(self) -> ReloadResult:
        """
        Rifà l'intero ciclo di fetch. Il nuovo snapshot sostituisce il
        precedente solo quando tutti i feed sono stati tentati; se il ciclo
        si interrompe resta pubblicato lo snapshot precedente.
        """
        with self.store.writer():
            try:
                report = self.fetcher.fetch_all()
                reservations = [reclassify(iv) for iv in report.intervals]
            except Exception as e:
                logger.exception("Ricarica dei calendari interrotta")
                return ReloadResult(success=False, error=str(e))

            snapshot = Snapshot(
                generated_at=datetime.now(timezone.utc),
                reservations=tuple(sorted(reservations, key=lambda iv: (iv.start, iv.property_id, iv.end, iv.source))),
                unavailable=frozenset(report.unavailable),
                errors=tuple(sorted(report.errors.items())),
            )
            self.store.publish(snapshot)

        logger.info("Calendari ricaricati: %d prenotazioni, gîtes non disponibili: %s",
                    len(snapshot.reservations), sorted(snapshot.unavailable) or "nessuno")
        return ReloadResult(success=True, unavailable_properties=tuple(sorted(snapshot.unavailable)))

    def _snapshot(self) -> Snapshot:
        snap = self.store.current()
        if snap is None:
            self.reload_feeds()
            snap = self.store.current()
        return snap or Snapshot(generated_at=datetime.now(timezone.utc))

    def list_arrivals_window(self) -> ArrivalsWindow:
        """Sempre una risposta: dati parziali + elenco dei gîtes senza feed."""
        snap = self._snapshot()
        window = relevance_window(self._today())
        reservations = tuple(iv for iv in snap.reservations if in_window(iv, window))

        last_day = max([window[1]] + [iv.end for iv in reservations])
        dates, d = [], window[0]
        while d <= last_day:
            dates.append(d.isoformat())
            d += timedelta(days=1)

        return ArrivalsWindow(
            generated_at=snap.generated_at,
            reservations=reservations,
            unavailable_properties=tuple(sorted(snap.unavailable)),
            dates=tuple(dates),
        )

    def events(self, property_id: Optional[str] = None):
        """Arrivi, partenze e cambi con il giorno dentro la finestra."""
        reservations = self.list_arrivals_window().reservations
        if property_id is not None:
            reservations = [iv for iv in reservations if iv.property_id == property_id]
        window_start, window_end = relevance_window(self._today())
        return [ev for ev in merge_turnovers(reservations) if window_start <= ev.day < window_end]

    # ─── import HAR ─────────────────────────────────────────────────────────

    def _load_document(self, document):
        if isinstance(document, str) and document == USE_LAST_UPLOADED:
            if not self.last_har_path.exists():
                raise BulkExportError("Nessun HAR caricato in precedenza")
            return self.last_har_path.read_bytes(), False
        return document, True

    def _remember_upload(self, document) -> None:
        self.last_har_path.parent.mkdir(parents=True, exist_ok=True)
        data = document if isinstance(document, (bytes, bytearray)) else str(document).encode("utf-8")
        self.last_har_path.write_bytes(data)

    def preview_bulk_import(self, document) -> ImportPreview:
        """
        Tutto o niente: HAR illeggibile (BulkExportError) o foglio non raggiungibile
        (CanonicalStoreUnavailable) annullano l'anteprima.
        """
        raw, is_new_upload = self._load_document(document)
        records = extract_records(raw)
        if is_new_upload and isinstance(raw, (bytes, bytearray, str)):
            self._remember_upload(raw)

        # la fusione deve essere completa prima della classificazione
        fused = fuse_platform_bookings(records.calendar, records.payouts) + fuse_personal_notes(records.notes)
        logger.info("Prenotazioni Airbnb: %d, note personali: %d",
                    sum(1 for r in fused if r.type == ReservationType.PLATFORM),
                    sum(1 for r in fused if r.type == ReservationType.PERSONAL))

        snap = self.store.current()
        live_arrivals = {(iv.property_id, iv.start) for iv in snap.reservations} if snap else set()
        candidates = classify_candidates(fused, self.canonical_store(), self.property_ids, live_arrivals)
        candidates.sort(key=lambda c: (c.reservation.property_id, c.reservation.check_in or date.min))

        preview = ImportPreview(
            generated_at=datetime.now(timezone.utc),
            candidates=candidates,
            counts_by_classification=count_by_classification(candidates),
            counts_by_property=count_by_property(candidates),
        )
        self._last_preview = preview
        return preview

    def commit_bulk_import(self, selected_ids: Iterable[str],
                           price_overrides: Optional[Dict[str, float]] = None,
                           comment_overrides: Optional[Dict[str, str]] = None,
                           user: Optional[str] = None) -> CommitResult:
        if self._last_preview is None:
            raise UnknownCandidateError("Nessuna anteprima da confermare")
        by_id = {c.id: c for c in self._last_preview.candidates}
        selected_ids = list(dict.fromkeys(selected_ids))
        unknown = [i for i in selected_ids if i not in by_id]
        if unknown:
            raise UnknownCandidateError(f"Candidati sconosciuti: {', '.join(unknown)}")

        chosen = [by_id[i] for i in selected_ids]
        importable = [c for c in chosen if c.selectable]
        already_there = [c for c in chosen if c.classification == Classification.EXISTING]
        rejected = [(c.id, c.reason or c.classification.value)
                    for c in chosen if not c.selectable and c.classification != Classification.EXISTING]

        result = self.canonical_store().insert_or_update(importable, price_overrides, comment_overrides)
        result.skipped_duplicates += len(already_there)
        result.rejected.extend(rejected)
        self.import_log.append(result, user=user)
        return result

    # ─── inserimento manuale, vacanze, tariffe ─────────────────────────────

    def save_reservation(self, property_id: str, name: str, check_in: date, check_out: date,
                         comment: Optional[str] = None, price: Optional[float] = None) -> int:
        if property_id not in self.property_ids:
            raise ValueError(f"Gîte sconosciuto: {property_id}")
        if check_out <= check_in:
            raise ValueError("La partenza deve essere successiva all'arrivo")
        return self.canonical_store().save_reservation(property_id, name, check_in, check_out, comment, price)

    def school_holidays(self, year: Optional[int] = None, zone: Optional[str] = SCHOOL_HOLIDAYS_DEFAULT_ZONE):
        return self.holidays.for_year(year or self._today().year, zone)

    def prices(self):
        return self.price_store.get()

    def save_prices(self, rules) -> None:
        self.price_store.set(rules)
