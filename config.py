"""
Configurazione centralizzata - modifica qui gîtes, feed iCal e mapping.
"""

from core.models import FeedEndpoint, Property

# ─── Gîtes e feed iCal ───────────────────────────────────────────────────────
# Ogni gîte espone più calendari iCal, uno per piattaforma di prenotazione.
# include_summary: conta solo gli eventi il cui SUMMARY contiene la stringa.
GITES = (
    Property(
        id="phonsine",
        name="Gîte de Phonsine",
        color="#E53935",
        endpoints=(
            FeedEndpoint("https://www.airbnb.fr/calendar/ical/6668903.ics?s=3610ebea31b864e7d5091b80938c221e", "Airbnb"),
            FeedEndpoint("http://www.abritel.fr/icalendar/ddd9339eb15b46a6acc3f1f24f2b0f50.ics?nonTentative", "Abritel"),
            FeedEndpoint("https://ics.itea.fr/gites56/56G14513/airbnb/ical_b096e61c56037c6af65124495dc06bef.ics", "Gites de France", include_summary="BOOKED"),
        ),
    ),
    Property(
        id="liberte",
        name="Gîte Le Liberté",
        color="#8E24AA",
        endpoints=(
            FeedEndpoint("https://www.airbnb.fr/calendar/ical/48504640.ics?s=c27d399e029a03b6b4dd791fbf026fee", "Airbnb"),
            FeedEndpoint("http://www.abritel.fr/icalendar/094a7b5f6cf345f9b51940e07e588ab2.ics", "Abritel"),
            FeedEndpoint("https://reservation.itea.fr/iCal_70b69a7451324ef50d43907fdb8b5c81.ics?aicc=f3792c7c79df6c160a2518bf3c55e9e6", "Gites de France", include_summary="BOOKED"),
        ),
    ),
    Property(
        id="gree",
        name="Gîte de la Grée",
        color="#3949AB",
        endpoints=(
            FeedEndpoint("http://www.abritel.fr/icalendar/3d33e48aeded478f8c11deda36f20008.ics?nonTentative", "Abritel"),
            FeedEndpoint("https://www.airbnb.fr/calendar/ical/16674752.ics?s=54a0101efa1112c86756ed2184506173", "Airbnb"),
            FeedEndpoint("https://www.airbnb.fr/calendar/ical/1256595615494549883.ics?s=61ea920c4f6392380d88563f08adcfee", "Airbnb", include_summary="Reserved"),
            FeedEndpoint("https://ics.itea.fr/gites56/56G14515/airbnb/ical_df6826eb2adf6af43537405cd7d3f872.ics", "Gites de France", include_summary="BOOKED"),
        ),
    ),
    Property(
        id="edmond",
        name="Gîte de l'oncle Edmond",
        color="#43A047",
        endpoints=(
            FeedEndpoint("https://www.airbnb.fr/calendar/ical/43504621.ics?s=ff78829f694b64d20d1c56c81b319d1f", "Airbnb"),
        ),
    ),
)

# ─── Fetch dei feed ──────────────────────────────────────────────────────────
# Airbnb cambia la risposta in base al client: lo user-agent resta fisso.
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
)
FETCH_TIMEOUT_S = 20
FETCH_WORKERS = 4
AIRBNB_TAG = "Airbnb"
DIRECT_TAG = "Direct"
# Spaziatura minima tra due richieste Airbnb qualsiasi (limite condiviso dell'account)
AIRBNB_MIN_INTERVAL_S = 1.5

# Un evento Airbnb con questo testo è un blocco manuale = prenotazione diretta
DIRECT_MARKER = "Airbnb (Not available)"

# ─── Finestra arrivi ─────────────────────────────────────────────────────────
WINDOW_DAYS_BEFORE = 1
WINDOW_DAYS_AFTER = 7
TIMEZONE = "Europe/Paris"

# ─── Import HAR (multi-calendario Airbnb) ────────────────────────────────────
# listingId Airbnb → id gîte
HAR_LISTINGS = {
    "16674752": "gree",
    "48504640": "liberte",
    "6668903": "phonsine",
    "43504621": "edmond",
}
# Annunci secondari: solo le prenotazioni Airbnb confluiscono nel gîte, mai le note
HAR_ALIAS_LISTINGS = {
    "1256595615494549883": "gree",
}
# Campi candidati per la nota libera di un giorno (vince il primo non vuoto)
HAR_NOTE_FIELDS = ("notes", "note", "dayNotes", "hostNotes")

# ─── Google Sheets (archivio canonico) ───────────────────────────────────────
# id gîte → nome del foglio
SHEET_NAMES = {
    "phonsine": "Phonsine",
    "gree": "Gree",
    "edmond": "Edmond",
    "liberte": "Liberté",
}

# Colonne del foglio di ogni gîte, 1-indexed (A=1, B=2, ...)
SHEET_COLUMNS = {
    "nome":     1,   # A - nome ospite
    "dal":      2,   # B - arrivo (DD/MM/YYYY)
    "al":       3,   # C - partenza (DD/MM/YYYY)
    "prezzo":   7,   # G - importo
    "commento": 10,  # J - commento / note
}
SHEET_WIDTH = 10
SHEET_DATE_FORMAT = "%d/%m/%Y"
HAR_HIGHLIGHT_COLOR = {"red": 1, "green": 0.976, "blue": 0.769}
# Righe inserite a mano dall'app
MANUAL_HIGHLIGHT_COLOR = {"red": 0.8, "green": 0.9, "blue": 1}

# Scritture: spaziatura minima e retry con backoff esponenziale
WRITE_THROTTLE_S = 1.1
WRITE_RETRY_LIMIT = 5
WRITE_BACKOFF_BASE_S = 0.5
WRITE_BACKOFF_MAX_S = 8.0

# ─── Vacanze scolastiche (data.education.gouv.fr) ───────────────────────────
SCHOOL_HOLIDAYS_URL = (
    "https://data.education.gouv.fr/api/explore/v2.1/catalog/datasets/"
    "fr-en-calendrier-scolaire/records"
)
SCHOOL_HOLIDAYS_PAGE_SIZE = 100  # massimo accettato dall'API
SCHOOL_HOLIDAYS_ZONES = ("A", "B", "C")
SCHOOL_HOLIDAYS_DEFAULT_ZONE = "B"  # Bretagna

# ─── File locali ─────────────────────────────────────────────────────────────
STATUS_FILE = "data/statuses.json"
IMPORT_LOG_FILE = "data/import-log.json"
IMPORT_LOG_LIMIT = 20
LAST_HAR_FILE = "data/last-upload.har"
PRICES_FILE = "data/prices.json"
