"""
Gîtes - Arrivi, partenze e import HAR Airbnb
Web app Streamlit: calendari iCal in memoria, Google Sheets come archivio.
"""

import hmac
import io
import logging
import os
import sys

import pandas as pd
import streamlit as st

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import GITES, SCHOOL_HOLIDAYS_DEFAULT_ZONE, SCHOOL_HOLIDAYS_ZONES, SHEET_NAMES
from core.errors import (
    BulkExportError,
    CanonicalStoreUnavailable,
    CanonicalStoreWriteError,
    UnknownCandidateError,
)
from core.holidays import holiday_dates
from core.models import Classification, EventKind, PriceRule, ReservationType
from core.service import USE_LAST_UPLOADED, CalendarService
from core.status_store import StatusStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

st.set_page_config(
    page_title="Gîtes - Arrivi",
    page_icon="🏡",
    layout="wide",
)

GITE_NAMES = {g.id: g.name for g in GITES}
KIND_LABELS = {
    EventKind.ARRIVAL: "🟢 Arrivo",
    EventKind.DEPARTURE: "🔴 Partenza",
    EventKind.TURNOVER: "🔄 Cambio ospiti",
    EventKind.SAME_DAY: "⚪ Soggiorno in giornata",
}
CLASS_LABELS = {
    Classification.NEW: "Nuova",
    Classification.EXISTING: "Già presente",
    Classification.PRICE_MISSING: "Prezzo mancante",
    Classification.COMMENT_MISSING: "Commento mancante",
    Classification.PRICE_COMMENT_MISSING: "Prezzo e commento mancanti",
    Classification.OUTSIDE_YEAR: "Fuori anno",
    Classification.INVALID: "Date non valide",
    Classification.UNKNOWN_PROPERTY: "Gîte sconosciuto",
}


@st.cache_resource
def get_service() -> CalendarService:
    """Un solo servizio (e un solo archivio in memoria) per processo."""
    return CalendarService()


@st.cache_resource
def get_status_store() -> StatusStore:
    return StatusStore()


# ── Accesso ──────────────────────────────────────────────────────────────────
def check_password() -> bool:
    if st.session_state.get("authenticated"):
        return True
    try:
        expected = st.secrets["app"]["password"]
    except Exception:
        st.error("✗ Password dell'app non configurata")
        return False
    pwd = st.text_input("Password", type="password")
    if pwd and hmac.compare_digest(pwd, expected):
        st.session_state.authenticated = True
        st.rerun()
    elif pwd:
        st.error("Password errata")
    return False


def check_sheets_connection() -> bool:
    try:
        _ = st.secrets["gcp_service_account"]
        _ = st.secrets["google_sheets"]["spreadsheet_id"]
        return True
    except Exception:
        return False


def df_to_excel_bytes(df: pd.DataFrame) -> bytes:
    """Converte DataFrame in bytes XLSX per il download."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Dati")
    return buf.getvalue()


st.title("🏡 Gîtes - Arrivi e partenze")

if not check_password():
    st.stop()

service = get_service()
statuses = get_status_store()
user = st.session_state.get("user", "")

with st.sidebar:
    st.header("Stato connessione")
    if check_sheets_connection():
        st.success("✓ Google Sheets connesso")
    else:
        st.error("✗ Credenziali mancanti")
        st.caption("Configura `.streamlit/secrets.toml`")

    st.session_state.user = st.text_input("Utente", value=user)

    st.divider()
    if st.button("🔄 Ricarica calendari"):
        with st.spinner("Caricamento calendari..."):
            result = service.reload_feeds()
        if result.success:
            st.success("✓ Calendari ricaricati")
        else:
            st.error(f"Ricarica fallita: {result.error}")


tab_arrivals, tab_manual, tab_import, tab_prices, tab_log = st.tabs(
    ["🗓️ Arrivi", "✍️ Nuova prenotazione", "📥 Import HAR", "💶 Tariffe", "📜 Registro import"]
)


# ============================================================
# TAB 1: ARRIVI
# ============================================================
with tab_arrivals:
    with st.spinner("Caricamento calendari..."):
        window = service.list_arrivals_window()

    st.caption(f"Aggiornato: {window.generated_at:%d/%m/%Y %H:%M} UTC")
    for gite_id in window.unavailable_properties:
        st.warning(f"⚠️ {GITE_NAMES.get(gite_id, gite_id)}: calendari non disponibili, dati incompleti.")

    holidays = service.school_holidays()
    vacation_days = holiday_dates(holidays)

    events = service.events()
    if not events:
        st.info("Nessun arrivo o partenza nei prossimi giorni.")
    else:
        current_statuses = statuses.get()
        for ev in events:
            status_id = f"{ev.property_id}_{ev.day.isoformat()}"
            done = current_statuses.get(status_id, {}).get("done", False)
            sources = ", ".join(sorted({iv.source for iv in ev.intervals}))
            col1, col2 = st.columns([4, 1])
            with col1:
                st.markdown(
                    f"**{ev.day:%d/%m}** — {GITE_NAMES.get(ev.property_id, ev.property_id)} — "
                    f"{KIND_LABELS[ev.kind]} ({sources})"
                    + (" 🎒 vacanze scolastiche" if ev.day in vacation_days else "")
                )
            with col2:
                checked = st.checkbox("Fatto", value=done, key=f"status_{status_id}")
                if checked != done:
                    statuses.set(status_id, checked, st.session_state.get("user") or None)

    if window.reservations:
        with st.expander("Prenotazioni nella finestra"):
            st.dataframe(pd.DataFrame([{
                "Gîte": GITE_NAMES.get(iv.property_id, iv.property_id),
                "Fonte": iv.source,
                "Arrivo": iv.start.strftime("%d/%m/%Y"),
                "Partenza": iv.end.strftime("%d/%m/%Y"),
                "Note": iv.summary,
            } for iv in window.reservations]), use_container_width=True, hide_index=True)

    with st.expander("Vacanze scolastiche"):
        zone = st.selectbox("Zona", SCHOOL_HOLIDAYS_ZONES,
                            index=SCHOOL_HOLIDAYS_ZONES.index(SCHOOL_HOLIDAYS_DEFAULT_ZONE))
        zone_holidays = service.school_holidays(zone=zone)
        if not zone_holidays:
            st.info("Calendario scolastico non disponibile.")
        else:
            st.dataframe(pd.DataFrame([{
                "Periodo": h.description,
                "Dal": h.start.strftime("%d/%m/%Y"),
                "Al": h.end.strftime("%d/%m/%Y"),
                "Anno scolastico": h.school_year,
            } for h in zone_holidays]), use_container_width=True, hide_index=True)


# ============================================================
# TAB 2: NUOVA PRENOTAZIONE
# ============================================================
with tab_manual:
    st.header("Inserimento manuale nel foglio")
    with st.form("manual_reservation"):
        gite_id = st.selectbox("Gîte", [g.id for g in GITES], format_func=lambda g: GITE_NAMES[g])
        name = st.text_input("Nome ospite")
        c1, c2 = st.columns(2)
        check_in = c1.date_input("Arrivo", format="DD/MM/YYYY")
        check_out = c2.date_input("Partenza", format="DD/MM/YYYY")
        suggested = service.price_store.for_gite(gite_id)
        price = st.number_input("Prezzo €", min_value=0.0, step=5.0,
                                value=float(suggested[0]) if suggested else 0.0)
        comment = st.text_area("Commento")
        submitted = st.form_submit_button("💾 Salva nel foglio", type="primary")

    if submitted:
        try:
            row = service.save_reservation(gite_id, name, check_in, check_out, comment, price or None)
        except ValueError as e:
            st.error(str(e))
        except CanonicalStoreUnavailable as e:
            st.error(f"Google Sheets non raggiungibile: {e}")
        except CanonicalStoreWriteError as e:
            st.error(f"Scrittura non riuscita: {e}")
        else:
            st.success(f"✓ Prenotazione salvata nel foglio {SHEET_NAMES[gite_id]}, riga {row}")


# ============================================================
# TAB 3: IMPORT HAR
# ============================================================
with tab_import:
    st.header("Import dal multi-calendario Airbnb")
    st.write("Carica l'HAR salvato dal browser: prenotazioni e note vengono confrontate col foglio.")

    uploaded = st.file_uploader("File HAR", type=["har", "json"])
    use_last = st.button("Usa l'ultimo HAR caricato")

    upload_key = (uploaded.name, uploaded.size) if uploaded is not None else None
    if use_last or (upload_key is not None and upload_key != st.session_state.get("preview_key")):
        st.session_state.preview_key = upload_key
        with st.spinner("Analisi HAR in corso..."):
            try:
                st.session_state.preview = service.preview_bulk_import(
                    uploaded.getvalue() if uploaded is not None and not use_last else USE_LAST_UPLOADED
                )
            except BulkExportError as e:
                st.session_state.preview = None
                st.error(f"HAR non utilizzabile: {e}")
            except CanonicalStoreUnavailable as e:
                st.session_state.preview = None
                st.error(f"Google Sheets non raggiungibile, anteprima annullata: {e}")

    preview = st.session_state.get("preview")
    if preview is not None and not preview.candidates:
        st.info("Nessuna prenotazione trovata nell'HAR.")
    elif preview is not None:
        counts = preview.counts_by_classification
        k1, k2, k3, k4 = st.columns(4)
        k1.metric("Nuove", counts.get("new", 0))
        k2.metric("Già presenti", counts.get("existing", 0))
        k3.metric("Da completare", counts.get("price_missing", 0) + counts.get("comment_missing", 0)
                  + counts.get("price_comment_missing", 0))
        k4.metric("Scartate", counts.get("invalid", 0) + counts.get("outside_year", 0)
                  + counts.get("unknown_property", 0))

        for gite_id, stats in preview.counts_by_property.items():
            st.caption(f"{SHEET_NAMES.get(gite_id, gite_id)}: +{stats['new']} / {stats['existing']} già presenti")

        rows = []
        for cand in preview.candidates:
            res = cand.reservation
            rows.append({
                "Importa": cand.selectable,
                "id": cand.id,
                "Gîte": SHEET_NAMES.get(res.property_id, res.property_id),
                "Tipo": "Airbnb" if res.type == ReservationType.PLATFORM else "Personale",
                "Arrivo": res.check_in.strftime("%d/%m/%Y") if res.check_in else "—",
                "Partenza": res.check_out.strftime("%d/%m/%Y") if res.check_out else "—",
                "Notti": res.nights,
                "Ospite": res.guest_name or "",
                "Payout €": res.payout_amount,
                "Commento": res.comment or "",
                "Stato": CLASS_LABELS[cand.classification],
                "Motivo": cand.reason,
                "Nei feed": "✓" if cand.in_live_feeds else "",
            })
        df_preview = pd.DataFrame(rows)

        show_all = st.checkbox("Mostra anche già presenti e scartate", value=False)
        df_view = df_preview if show_all else df_preview[df_preview["Importa"]]
        edited = st.data_editor(
            df_view,
            use_container_width=True,
            hide_index=True,
            disabled=[c for c in df_view.columns if c not in ("Importa", "Payout €", "Commento")],
            key="har_editor",
        )

        col_csv, col_xlsx = st.columns(2)
        with col_csv:
            st.download_button("⬇️ Scarica CSV", df_preview.to_csv(index=False).encode("utf-8"),
                               file_name="anteprima_har.csv", mime="text/csv")
        with col_xlsx:
            st.download_button("⬇️ Scarica Excel", df_to_excel_bytes(df_preview),
                               file_name="anteprima_har.xlsx",
                               mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

        st.divider()
        if st.button("✅ Salva su Google Sheets", type="primary"):
            selected = edited[edited["Importa"]]
            originals = df_preview.set_index("id")
            price_overrides, comment_overrides = {}, {}
            for _, row in selected.iterrows():
                if pd.notna(row["Payout €"]) and row["Payout €"] != originals.at[row["id"], "Payout €"]:
                    price_overrides[row["id"]] = float(row["Payout €"])
                if row["Commento"] != originals.at[row["id"], "Commento"]:
                    comment_overrides[row["id"]] = row["Commento"]
            with st.spinner("Salvataggio in corso..."):
                try:
                    result = service.commit_bulk_import(
                        selected["id"].tolist(), price_overrides, comment_overrides,
                        user=st.session_state.get("user") or None,
                    )
                except UnknownCandidateError as e:
                    st.error(f"Anteprima scaduta, ricarica l'HAR: {e}")
                except CanonicalStoreUnavailable as e:
                    st.error(f"Google Sheets non raggiungibile, nessuna riga scritta: {e}")
                else:
                    st.success(
                        f"✓ Salvato: **{result.inserted}** nuove, **{result.updated}** completate. "
                        f"Saltate (già presenti): {result.skipped_duplicates}."
                    )
                    if result.rejected:
                        with st.expander(f"🚫 {len(result.rejected)} righe non importabili"):
                            for cand_id, reason in result.rejected:
                                st.write(f"`{cand_id}`: {reason}")
                    if result.failures:
                        with st.expander(f"⚠️ {len(result.failures)} righe non scritte"):
                            for cand_id, msg in result.failures:
                                st.write(f"`{cand_id}`: {msg}")


# ============================================================
# TAB 4: TARIFFE
# ============================================================
with tab_prices:
    st.header("Tariffe di default")
    st.caption("Prezzo proposto nell'inserimento manuale per i gîtes selezionati.")
    df_prices = pd.DataFrame(
        [{"Prezzo €": r.amount, "Gîtes": ", ".join(r.gites)} for r in service.prices()],
        columns=["Prezzo €", "Gîtes"],
    )
    edited_prices = st.data_editor(df_prices, num_rows="dynamic", use_container_width=True,
                                   hide_index=True, key="prices_editor")
    st.caption("Gîtes: " + ", ".join(g.id for g in GITES))
    if st.button("💾 Salva tariffe"):
        known = {g.id for g in GITES}
        rules = []
        for _, row in edited_prices.iterrows():
            if pd.isna(row["Prezzo €"]):
                continue
            gites = [g.strip() for g in str(row["Gîtes"] or "").split(",") if g.strip() in known]
            rules.append(PriceRule(amount=float(row["Prezzo €"]), gites=gites))
        service.save_prices(rules)
        st.success(f"✓ {len(rules)} tariffe salvate")


# ============================================================
# TAB 5: REGISTRO IMPORT
# ============================================================
with tab_log:
    st.header("Ultimi import")
    entries = service.import_log.entries()
    if not entries:
        st.info("Nessun import registrato.")
    else:
        st.dataframe(pd.DataFrame([{
            "Data": e.get("at", ""),
            "Utente": e.get("user") or "",
            "Inserite": e.get("inserted", 0),
            "Aggiornate": e.get("updated", 0),
            "Già presenti": e.get("skipped_duplicates", 0),
            "Non importabili": len(e.get("rejected") or []),
            "Errori": len(e.get("failures") or []),
        } for e in reversed(entries)]), use_container_width=True, hide_index=True)
