"""
Google Sheets storage — archivio canonico delle prenotazioni.

Il Google Sheet ha un foglio per gîte (vedi SHEET_NAMES), riga 1 = intestazioni:
  A nome | B dal (DD/MM/YYYY) | C al (DD/MM/YYYY) | ... | G prezzo | ... | J commento
Le righe sono ordinate per data di arrivo; le nuove righe importate dall'HAR
vengono inserite al loro posto ed evidenziate.

Autenticazione via Service Account (credenziali in Streamlit secrets):
  [gcp_service_account]  → JSON del service account
  [google_sheets]        → spreadsheet_id, year (anno gestito dal foglio)

Scritture: spaziatura minima WRITE_THROTTLE_S e retry con backoff esponenziale
su quota/errori temporanei di Google. Un errore di lettura diventa
CanonicalStoreUnavailable, mai "prenotazione assente".
"""

import logging
import time
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import gspread
import requests
import streamlit as st

from config import (
    HAR_HIGHLIGHT_COLOR,
    MANUAL_HIGHLIGHT_COLOR,
    SHEET_COLUMNS,
    SHEET_DATE_FORMAT,
    SHEET_NAMES,
    SHEET_WIDTH,
    WRITE_BACKOFF_BASE_S,
    WRITE_BACKOFF_MAX_S,
    WRITE_RETRY_LIMIT,
    WRITE_THROTTLE_S,
)
from core.errors import CanonicalStoreUnavailable, CanonicalStoreWriteError
from core.fusion import clean_comment
from core.models import Candidate, CommitResult, ReservationType, StoredReservation
from core.throttle import Throttle

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@st.cache_resource
def get_gspread_client():
    """
    Restituisce client gspread autenticato via Service Account.
    Le credenziali vengono da st.secrets (Streamlit Cloud) o da
    .streamlit/secrets.toml in locale.
    """
    creds_dict = dict(st.secrets["gcp_service_account"])
    return gspread.service_account_from_dict(creds_dict)


def open_canonical_store() -> "SheetsStore":
    try:
        gc = get_gspread_client()
        conf = st.secrets["google_sheets"]
        spreadsheet = gc.open_by_key(conf["spreadsheet_id"])
    except (KeyError, gspread.exceptions.GSpreadException, requests.exceptions.RequestException) as e:
        raise CanonicalStoreUnavailable(f"Google Sheets non raggiungibile: {e}") from e
    year = int(conf.get("year", date.today().year))
    return SheetsStore(spreadsheet, year)


def fmt_date(d: date) -> str:
    return d.strftime(SHEET_DATE_FORMAT) if d else ""


def parse_sheet_date(value) -> Optional[date]:
    s = str(value or "").strip()
    if not s:
        return None
    for fmt in (SHEET_DATE_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def _cell(row: list, col_key: str) -> str:
    idx = SHEET_COLUMNS[col_key] - 1
    return str(row[idx]).strip() if len(row) > idx and row[idx] is not None else ""


def _status_of(exc: Exception) -> Optional[int]:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)


class SheetsStore:
    def __init__(self, spreadsheet, year: int,
                 throttle: Optional[Throttle] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.spreadsheet = spreadsheet
        self.year = year
        self.throttle = throttle or Throttle(WRITE_THROTTLE_S)
        self._sleep = sleep

    # ─── lettura ────────────────────────────────────────────────────────────

    def _worksheet(self, property_id: str):
        return self.spreadsheet.worksheet(SHEET_NAMES[property_id])

    def _read_rows(self, property_id: str) -> List[StoredReservation]:
        try:
            values = self._worksheet(property_id).get_all_values()
        except (gspread.exceptions.GSpreadException, requests.exceptions.RequestException) as e:
            raise CanonicalStoreUnavailable(
                f"Foglio {SHEET_NAMES.get(property_id, property_id)} non leggibile: {e}"
            ) from e

        rows = []
        for i, row in enumerate(values[1:], start=2):
            check_in = parse_sheet_date(_cell(row, "dal"))
            check_out = parse_sheet_date(_cell(row, "al"))
            if check_in is None or check_out is None:
                continue
            rows.append(StoredReservation(
                check_in=check_in,
                check_out=check_out,
                has_price=bool(_cell(row, "prezzo")),
                has_comment=bool(_cell(row, "commento")),
                row=i,
            ))
        return rows

    def lookup(self, property_id: str, date_range: Tuple[date, date]) -> List[StoredReservation]:
        """Righe del gîte con arrivo nell'intervallo [inizio, fine]."""
        start, end = date_range
        return [r for r in self._read_rows(property_id) if start <= r.check_in <= end]

    # ─── scrittura ──────────────────────────────────────────────────────────

    def _write(self, fn, *args, **kwargs):
        """Chiamata di scrittura con spaziatura minima e retry esponenziale."""
        for attempt in range(WRITE_RETRY_LIMIT + 1):
            self.throttle.acquire()
            try:
                return fn(*args, **kwargs)
            except gspread.exceptions.APIError as e:
                status = _status_of(e)
                if status not in RETRYABLE_STATUS or attempt == WRITE_RETRY_LIMIT:
                    raise CanonicalStoreWriteError(f"scrittura fallita (HTTP {status}): {e}") from e
                delay = min(WRITE_BACKOFF_BASE_S * (2 ** attempt), WRITE_BACKOFF_MAX_S)
                logger.warning("Google Sheets HTTP %s, nuovo tentativo tra %.1fs", status, delay)
                self._sleep(delay)
            except requests.exceptions.RequestException as e:
                raise CanonicalStoreWriteError(f"scrittura fallita: {e}") from e

    @staticmethod
    def _insert_position(rows: List[StoredReservation], check_in: date, check_out: date) -> int:
        for r in sorted(rows, key=lambda r: r.row):
            if check_in < r.check_in or (check_in == r.check_in and check_out < r.check_out):
                return r.row
        return (max((r.row for r in rows), default=1)) + 1

    @staticmethod
    def _row_values(name, check_in: date, check_out: date, price, comment) -> list:
        values = [""] * SHEET_WIDTH
        values[SHEET_COLUMNS["nome"] - 1] = name or ""
        values[SHEET_COLUMNS["dal"] - 1] = fmt_date(check_in)
        values[SHEET_COLUMNS["al"] - 1] = fmt_date(check_out)
        values[SHEET_COLUMNS["prezzo"] - 1] = price if price is not None else ""
        values[SHEET_COLUMNS["commento"] - 1] = comment or ""
        return values

    def _insert_highlighted(self, ws, row: int, values: list, color: dict) -> None:
        """Inserisce la riga; un errore di sola evidenziazione non annulla l'inserimento."""
        self._write(ws.insert_row, values, index=row, value_input_option="USER_ENTERED")
        try:
            self._write(ws.format, f"A{row}:J{row}", {"backgroundColor": color})
        except CanonicalStoreWriteError as e:
            logger.warning("Evidenziazione riga %d non applicata: %s", row, e)

    def save_reservation(self, property_id: str, name: str, check_in: date, check_out: date,
                         comment: Optional[str] = None, price: Optional[float] = None) -> int:
        """
        Inserimento manuale di una prenotazione nel foglio del gîte, al suo posto
        in ordine di date ed evidenziato. Returns: numero della riga scritta.
        """
        rows = self._read_rows(property_id)
        ws = self._worksheet(property_id)
        row = self._insert_position(rows, check_in, check_out)
        values = self._row_values(name, check_in, check_out, price, clean_comment(comment))
        self._insert_highlighted(ws, row, values, MANUAL_HIGHLIGHT_COLOR)
        logger.info("Prenotazione manuale %s %s-%s scritta alla riga %d",
                    property_id, fmt_date(check_in), fmt_date(check_out), row)
        return row

    def insert_or_update(
        self,
        candidates: Iterable[Candidate],
        price_overrides: Optional[Dict[str, float]] = None,
        comment_overrides: Optional[Dict[str, str]] = None,
    ) -> CommitResult:
        """
        Scrive i candidati confermati dall'utente.
          - riga già presente → completa prezzo/commento mancanti (updated)
            oppure niente da completare (skipped_duplicates)
          - riga assente → inserita in ordine ed evidenziata (inserted)
        Gli errori sono raccolti per candidato in `failures`.
        """
        price_overrides = price_overrides or {}
        comment_overrides = comment_overrides or {}
        result = CommitResult()

        by_property: Dict[str, List[Candidate]] = {}
        for cand in candidates:
            by_property.setdefault(cand.reservation.property_id, []).append(cand)

        for property_id, cands in sorted(by_property.items()):
            try:
                ws = self._worksheet(property_id)
                rows = self._read_rows(property_id)
            except (CanonicalStoreUnavailable, gspread.exceptions.GSpreadException, KeyError) as e:
                for cand in cands:
                    result.failures.append((cand.id, str(e)))
                continue

            existing = {(r.check_in, r.check_out): r for r in rows}
            seen = set()
            inserts = []
            for cand in cands:
                res = cand.reservation
                key = (res.check_in, res.check_out)
                if key in seen:
                    result.skipped_duplicates += 1
                    continue
                seen.add(key)

                price = price_overrides.get(cand.id, res.payout_amount)
                comment = clean_comment(comment_overrides.get(cand.id, res.comment))
                if res.type == ReservationType.PERSONAL:
                    price = price_overrides.get(cand.id)

                match = existing.get(key)
                if match is None:
                    inserts.append((cand, price, comment))
                    continue
                try:
                    wrote = False
                    if not match.has_price and price is not None:
                        self._write(ws.update_cell, match.row, SHEET_COLUMNS["prezzo"], price)
                        wrote = True
                    if not match.has_comment and comment:
                        self._write(ws.update_cell, match.row, SHEET_COLUMNS["commento"], comment)
                        wrote = True
                except CanonicalStoreWriteError as e:
                    logger.error("Aggiornamento riga %s fallito: %s", match.row, e)
                    result.failures.append((cand.id, str(e)))
                    continue
                if wrote:
                    result.updated += 1
                else:
                    result.skipped_duplicates += 1

            # Inserimento dal basso verso l'alto: le posizioni calcolate restano valide
            inserts.sort(key=lambda t: (t[0].reservation.check_in, t[0].reservation.check_out), reverse=True)
            for cand, price, comment in inserts:
                res = cand.reservation
                row = self._insert_position(rows, res.check_in, res.check_out)
                values = self._row_values(res.guest_name, res.check_in, res.check_out, price, comment)
                try:
                    self._insert_highlighted(ws, row, values, HAR_HIGHLIGHT_COLOR)
                except CanonicalStoreWriteError as e:
                    logger.error("Inserimento %s fallito: %s", cand.id, e)
                    result.failures.append((cand.id, str(e)))
                    continue
                result.inserted += 1

        logger.info("Import su Sheets: %d inserite, %d aggiornate, %d già presenti, %d errori",
                    result.inserted, result.updated, result.skipped_duplicates, len(result.failures))
        return result
